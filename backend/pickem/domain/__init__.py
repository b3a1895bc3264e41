"""Domain models used by settlement, ingestion, and the HTTP layer."""

from .models import (
    MatchRecord,
    NormalizedFixture,
    PredictionRecord,
    ScoreRecord,
    SettlementResult,
)

__all__ = [
    "MatchRecord",
    "NormalizedFixture",
    "PredictionRecord",
    "ScoreRecord",
    "SettlementResult",
]
