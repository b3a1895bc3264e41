"""Repository abstractions for database interactions."""

from .bet_repository import BetRepository
from .match_repository import MatchRepository
from .memory import InMemorySettlementStore
from .score_repository import ScoreRepository
from .settlement_store import SqlSettlementStore
from .types import LeaderboardRow

__all__ = [
    "BetRepository",
    "InMemorySettlementStore",
    "LeaderboardRow",
    "MatchRepository",
    "ScoreRepository",
    "SqlSettlementStore",
]
