from __future__ import annotations

from datetime import timedelta
from typing import Any, Sequence

import pytest
from sqlalchemy import select

from ingestion.client import FootballApiError
from pickem import models
from pipelines.sync_run import run_sync


def _raw_fixture(
    fixture_id: int,
    *,
    league: int = 2,
    short: str = "NS",
    home: int | None = None,
    away: int | None = None,
    date: str = "2025-03-12T20:00:00+00:00",
) -> dict[str, Any]:
    return {
        "fixture": {"id": fixture_id, "date": date, "status": {"short": short}},
        "league": {"id": league, "season": 2024},
        "teams": {"home": {"name": f"Home {fixture_id}"}, "away": {"name": f"Away {fixture_id}"}},
        "goals": {"home": home, "away": away},
    }


class StubClient:
    def __init__(
        self,
        by_league: dict[int, list[dict[str, Any]]] | None = None,
        by_id: dict[int, dict[str, Any]] | None = None,
        failing_leagues: Sequence[int] = (),
    ) -> None:
        self.by_league = by_league or {}
        self.by_id = by_id or {}
        self.failing_leagues = set(failing_leagues)
        self.fixture_calls: list[tuple[int, int, Any]] = []
        self.id_batches: list[list[int]] = []
        self.closed = False

    def fetch_fixtures(self, league, season, *, from_date=None):
        self.fixture_calls.append((league, season, from_date))
        if league in self.failing_leagues:
            raise FootballApiError("rate limited")
        return list(self.by_league.get(league, []))

    def fetch_fixtures_by_ids(self, ids):
        self.id_batches.append(list(ids))
        return [self.by_id[value] for value in ids if value in self.by_id]

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def test_full_sync_inserts_new_fixtures_and_skips_known(
    test_settings, session_scope_factory, db_session, now
):
    client = StubClient(by_league={2: [_raw_fixture(1), _raw_fixture(2)], 3: [_raw_fixture(3, league=3)]})

    first = run_sync(
        "full",
        test_settings,
        now=now,
        client_factory=lambda: client,
        session_factory=session_scope_factory,
    )
    second = run_sync(
        "full",
        test_settings,
        now=now,
        client_factory=lambda: client,
        session_factory=session_scope_factory,
    )

    assert first.tournaments.to_dict() == {"processed": 2, "errors": 0}
    assert first.matches.inserted == 3
    assert second.matches.inserted == 0
    assert second.matches.skipped == 3
    assert client.fixture_calls[0] == (2, 2024, None)
    # Later runs fetch from the latest stored kickoff date.
    assert client.fixture_calls[2][2] is not None
    assert client.closed is True
    api_ids = db_session.execute(select(models.Match.api_match_id)).scalars().all()
    assert sorted(api_ids) == [1, 2, 3]


def test_full_sync_counts_feed_failures_without_aborting(
    test_settings, session_scope_factory, now
):
    client = StubClient(by_league={3: [_raw_fixture(3, league=3)]}, failing_leagues=[2])

    summary = run_sync(
        "full",
        test_settings,
        now=now,
        client_factory=lambda: client,
        session_factory=session_scope_factory,
    )

    assert summary.matches.inserted == 1
    assert summary.failures == [{"tournament": "UEFA Champions League", "reason": "rate limited"}]


def test_live_sync_refreshes_results_and_settles(
    test_settings, session_scope_factory, db_session, make_match, tournament, now
):
    finished = make_match(status="IN_PLAY", kickoff=now - timedelta(hours=2), api_match_id=101)
    overdue = make_match(status="SCHEDULED", kickoff=now - timedelta(minutes=10), api_match_id=102)
    later = make_match(status="SCHEDULED", kickoff=now + timedelta(days=1), api_match_id=103)
    other = make_match(status="IN_PLAY", kickoff=now - timedelta(hours=1), api_match_id=104)
    db_session.add(models.Bet(user_id="u1", match_id=finished.id, picked_result="HOME_WIN"))
    db_session.add(models.Bet(user_id="u2", match_id=finished.id, picked_result="DRAW"))
    db_session.commit()

    client = StubClient(
        by_id={
            101: _raw_fixture(101, short="FT", home=2, away=0),
            102: _raw_fixture(102, short="1H", home=0, away=0),
            104: _raw_fixture(104, short="HT", home=1, away=1),
        }
    )

    summary = run_sync(
        "live",
        test_settings,
        now=now,
        client_factory=lambda: client,
        session_factory=session_scope_factory,
    )

    assert summary.matches.updated == 3
    assert summary.scoring.to_dict() == {"processed_matches": 1, "updated_scores": 1, "errors": 0}
    assert all(len(batch) <= test_settings.sync_live_batch_size for batch in client.id_batches)
    assert 103 not in {value for batch in client.id_batches for value in batch}

    db_session.expire_all()
    refreshed = db_session.get(models.Match, finished.id)
    assert refreshed.status == "FINISHED"
    assert refreshed.result == "HOME_WIN"
    assert refreshed.is_scored is True
    assert db_session.get(models.Match, overdue.id).status == "IN_PLAY"
    assert db_session.get(models.Match, later.id).status == "SCHEDULED"
    assert db_session.get(models.Match, other.id).result is None
    assert db_session.get(models.Score, ("u1", tournament.id)).points == 3


def test_live_sync_without_candidates_skips_feed(test_settings, session_scope_factory, now):
    def _no_client():
        raise AssertionError("feed should not be called")

    summary = run_sync(
        "live",
        test_settings,
        now=now,
        client_factory=_no_client,
        session_factory=session_scope_factory,
    )

    assert summary.matches.updated == 0
    assert summary.scoring.processed_matches == 0


def test_invalid_mode(test_settings, session_scope_factory):
    with pytest.raises(ValueError):
        run_sync("weekly", test_settings, session_factory=session_scope_factory)
