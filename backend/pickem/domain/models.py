"""Typed domain representations shared by the settlement engine, repositories, and APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class MatchStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PLAY = "IN_PLAY"
    FINISHED = "FINISHED"
    POSTPONED = "POSTPONED"
    CANCELED = "CANCELED"


class MatchOutcome(str, Enum):
    HOME_WIN = "HOME_WIN"
    DRAW = "DRAW"
    AWAY_WIN = "AWAY_WIN"


@dataclass(slots=True, frozen=True)
class MatchRecord:
    """Snapshot of a fixture as seen by settlement."""

    match_id: int
    tournament_id: int
    match_datetime: datetime
    status: MatchStatus
    outcome: MatchOutcome | None
    settled: bool = False


@dataclass(slots=True, frozen=True)
class PredictionRecord:
    """One user's forecast for one match. Settlement only reads these."""

    prediction_id: int
    user_id: str
    match_id: int
    predicted: MatchOutcome
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class ScoreRecord:
    """Cumulative points of a user within one tournament."""

    user_id: str
    tournament_id: int
    points: int
    updated_at: datetime | None = None


@dataclass(slots=True)
class SettlementResult:
    """Outcome of one settlement invocation; built fresh and returned by value."""

    processed_matches: int = 0
    updated_scores: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed_matches": self.processed_matches,
            "updated_scores": self.updated_scores,
            "errors": list(self.errors),
        }


@dataclass(slots=True)
class NormalizedFixture:
    """Fixture from the external feed mapped onto local statuses and outcomes."""

    api_match_id: int
    api_league_id: int | None
    home_team: str
    away_team: str
    match_datetime: datetime
    status: MatchStatus
    outcome: MatchOutcome | None
    home_score: int | None
    away_score: int | None
    raw_data: dict[str, Any] | None = None
