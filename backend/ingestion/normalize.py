from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

from pickem.domain import NormalizedFixture
from pickem.domain.models import MatchOutcome, MatchStatus

_STATUS_MAP: dict[str, MatchStatus] = {
    # Not started
    "TBD": MatchStatus.SCHEDULED,
    "NS": MatchStatus.SCHEDULED,
    # In play, including breaks and interruptions
    "1H": MatchStatus.IN_PLAY,
    "HT": MatchStatus.IN_PLAY,
    "2H": MatchStatus.IN_PLAY,
    "ET": MatchStatus.IN_PLAY,
    "BT": MatchStatus.IN_PLAY,
    "P": MatchStatus.IN_PLAY,
    "SUSP": MatchStatus.IN_PLAY,
    "INT": MatchStatus.IN_PLAY,
    "LIVE": MatchStatus.IN_PLAY,
    # Finished
    "FT": MatchStatus.FINISHED,
    "AET": MatchStatus.FINISHED,
    "PEN": MatchStatus.FINISHED,
    "PST": MatchStatus.POSTPONED,
    "CANC": MatchStatus.CANCELED,
    "ABD": MatchStatus.CANCELED,
    "AWD": MatchStatus.CANCELED,
    "WO": MatchStatus.CANCELED,
}


def map_api_status(short_status: str | None) -> MatchStatus:
    """Translate a feed short status code; unknown codes count as scheduled."""
    if not short_status:
        return MatchStatus.SCHEDULED
    return _STATUS_MAP.get(short_status.strip().upper(), MatchStatus.SCHEDULED)


def calculate_outcome(home_goals: int | None, away_goals: int | None) -> MatchOutcome | None:
    if home_goals is None or away_goals is None:
        return None
    if home_goals > away_goals:
        return MatchOutcome.HOME_WIN
    if home_goals < away_goals:
        return MatchOutcome.AWAY_WIN
    return MatchOutcome.DRAW


def _parse_datetime(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = date_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_goals(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _section(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def normalize_fixture(raw_fixture: dict[str, Any]) -> NormalizedFixture | None:
    """Map one feed fixture onto local statuses; returns None without a fixture id."""
    fixture = _section(raw_fixture, "fixture")
    raw_id = fixture.get("id")
    if raw_id is None:
        return None
    try:
        api_match_id = int(raw_id)
    except (TypeError, ValueError):
        return None

    league = _section(raw_fixture, "league")
    teams = _section(raw_fixture, "teams")
    goals = _section(raw_fixture, "goals")

    status = map_api_status(_section(fixture, "status").get("short"))
    home_goals = _parse_goals(goals.get("home"))
    away_goals = _parse_goals(goals.get("away"))
    # Only a finished match has a final outcome.
    outcome = calculate_outcome(home_goals, away_goals) if status is MatchStatus.FINISHED else None

    league_id = league.get("id")
    return NormalizedFixture(
        api_match_id=api_match_id,
        api_league_id=int(league_id) if league_id is not None else None,
        home_team=str(_section(teams, "home").get("name") or "TBD"),
        away_team=str(_section(teams, "away").get("name") or "TBD"),
        match_datetime=_parse_datetime(fixture.get("date")),
        status=status,
        outcome=outcome,
        home_score=home_goals,
        away_score=away_goals,
        raw_data=raw_fixture,
    )


__all__ = ["calculate_outcome", "map_api_status", "normalize_fixture"]
