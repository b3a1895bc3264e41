"""In-memory settlement store.

Keeps matches, predictions and scores in plain dicts. Used by tests and for
previewing settlement over hand-built data; individual operations can be made
to fail to exercise error isolation.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable

from pickem.domain import MatchRecord, PredictionRecord, ScoreRecord
from pickem.domain.models import MatchStatus
from pickem.errors import Conflict, NotFound, StoreError, Unexpected


@dataclass
class InMemorySettlementStore:
    matches: dict[int, MatchRecord] = field(default_factory=dict)
    predictions: list[PredictionRecord] = field(default_factory=list)
    scores: dict[tuple[str, int], ScoreRecord] = field(default_factory=dict)

    # failure injection
    fail_discovery: bool = False
    failing_prediction_matches: set[int] = field(default_factory=set)
    failing_score_users: set[str] = field(default_factory=set)
    failing_settle_matches: set[int] = field(default_factory=set)

    # bookkeeping
    writes: int = 0

    @classmethod
    def from_records(
        cls,
        matches: Iterable[MatchRecord] = (),
        predictions: Iterable[PredictionRecord] = (),
        scores: Iterable[ScoreRecord] = (),
    ) -> "InMemorySettlementStore":
        return cls(
            matches={match.match_id: match for match in matches},
            predictions=list(predictions),
            scores={(score.user_id, score.tournament_id): score for score in scores},
        )

    def find_unsettled_finished_matches(self) -> list[MatchRecord]:
        if self.fail_discovery:
            raise StoreError(Unexpected("simulated discovery failure"))
        return [
            match
            for match in self.matches.values()
            if match.status == MatchStatus.FINISHED
            and match.outcome is not None
            and not match.settled
        ]

    def find_predictions_for_match(self, match_id: int) -> list[PredictionRecord]:
        if match_id in self.failing_prediction_matches:
            raise StoreError(Unexpected(f"simulated failure reading bets for match {match_id}"))
        return [prediction for prediction in self.predictions if prediction.match_id == match_id]

    def get_score(self, user_id: str, tournament_id: int) -> ScoreRecord | None:
        return self.scores.get((user_id, tournament_id))

    def upsert_score(
        self, user_id: str, tournament_id: int, new_total: int, updated_at: datetime
    ) -> None:
        if user_id in self.failing_score_users:
            raise StoreError(Unexpected(f"simulated failure writing score for user {user_id}"))
        self.scores[(user_id, tournament_id)] = ScoreRecord(
            user_id=user_id,
            tournament_id=tournament_id,
            points=new_total,
            updated_at=updated_at,
        )
        self.writes += 1

    def mark_match_settled(self, match_id: int) -> None:
        if match_id in self.failing_settle_matches:
            raise StoreError(Unexpected(f"simulated failure settling match {match_id}"))
        match = self.matches.get(match_id)
        if match is None:
            raise StoreError(NotFound(f"match {match_id}"))
        if match.settled:
            raise StoreError(Conflict(f"match {match_id} is already settled"))
        self.matches[match_id] = replace(match, settled=True)
        self.writes += 1

    def points_for(self, user_id: str, tournament_id: int) -> int:
        score = self.scores.get((user_id, tournament_id))
        return score.points if score is not None else 0


__all__ = ["InMemorySettlementStore"]
