from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ingestion.normalize import calculate_outcome, map_api_status, normalize_fixture
from pickem.domain.models import MatchOutcome, MatchStatus


def _fixture(short: str = "FT", home: int | None = 2, away: int | None = 1) -> dict:
    return {
        "fixture": {"id": 1208021, "date": "2025-03-11T20:00:00+00:00", "status": {"short": short}},
        "league": {"id": 2, "name": "UEFA Champions League", "season": 2024},
        "teams": {"home": {"name": "Arsenal"}, "away": {"name": "PSV Eindhoven"}},
        "goals": {"home": home, "away": away},
    }


@pytest.mark.parametrize(
    ("short", "expected"),
    [
        ("NS", MatchStatus.SCHEDULED),
        ("HT", MatchStatus.IN_PLAY),
        ("SUSP", MatchStatus.IN_PLAY),
        ("PEN", MatchStatus.FINISHED),
        ("PST", MatchStatus.POSTPONED),
        ("AWD", MatchStatus.CANCELED),
        ("???", MatchStatus.SCHEDULED),
        (None, MatchStatus.SCHEDULED),
    ],
)
def test_map_api_status(short, expected):
    assert map_api_status(short) is expected


def test_calculate_outcome():
    assert calculate_outcome(3, 1) is MatchOutcome.HOME_WIN
    assert calculate_outcome(0, 0) is MatchOutcome.DRAW
    assert calculate_outcome(0, 2) is MatchOutcome.AWAY_WIN
    assert calculate_outcome(None, 2) is None


def test_normalize_finished_fixture():
    fixture = normalize_fixture(_fixture())

    assert fixture is not None
    assert fixture.api_match_id == 1208021
    assert fixture.api_league_id == 2
    assert fixture.home_team == "Arsenal"
    assert fixture.match_datetime == datetime(2025, 3, 11, 20, 0, tzinfo=timezone.utc)
    assert fixture.status is MatchStatus.FINISHED
    assert fixture.outcome is MatchOutcome.HOME_WIN
    assert (fixture.home_score, fixture.away_score) == (2, 1)


def test_live_fixture_has_no_outcome_yet():
    fixture = normalize_fixture(_fixture(short="2H", home=1, away=1))

    assert fixture is not None
    assert fixture.status is MatchStatus.IN_PLAY
    assert fixture.outcome is None
    assert fixture.home_score == 1


def test_fixture_without_id_is_dropped():
    assert normalize_fixture({"fixture": {}}) is None
