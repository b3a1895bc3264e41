"""Domain services: settlement, leaderboards and bets."""

from .settlement import (
    POINTS_PER_CORRECT_PICK,
    SettlementStore,
    is_correct_prediction,
    is_settleable,
    settle,
)

__all__ = [
    "POINTS_PER_CORRECT_PICK",
    "SettlementStore",
    "is_correct_prediction",
    "is_settleable",
    "settle",
]
