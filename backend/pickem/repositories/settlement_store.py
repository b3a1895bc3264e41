"""SQLAlchemy-backed store used by the settlement engine."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pickem.domain import MatchRecord, PredictionRecord, ScoreRecord
from pickem.domain.models import MatchOutcome, MatchStatus
from pickem.errors import Conflict, StoreError, Unexpected, classify_db_error
from pickem.models import Bet, Match, Score

from .bet_repository import BetRepository
from .match_repository import MatchRepository
from .score_repository import ScoreRepository

# Raised when a stored status or pick is not a member of its enum.
_DECODE_ERRORS = (LookupError, ValueError)


def _to_match_record(match: Match) -> MatchRecord:
    return MatchRecord(
        match_id=match.id,
        tournament_id=match.tournament_id,
        match_datetime=match.match_datetime,
        status=MatchStatus(match.status),
        outcome=MatchOutcome(match.result) if match.result else None,
        settled=bool(match.is_scored),
    )


def _to_prediction_record(bet: Bet) -> PredictionRecord:
    return PredictionRecord(
        prediction_id=bet.id,
        user_id=bet.user_id,
        match_id=bet.match_id,
        predicted=MatchOutcome(bet.picked_result),
        created_at=bet.created_at,
        updated_at=bet.updated_at,
    )


def _to_score_record(score: Score) -> ScoreRecord:
    return ScoreRecord(
        user_id=score.user_id,
        tournament_id=score.tournament_id,
        points=score.points,
        updated_at=score.updated_at,
    )


class SqlSettlementStore:
    """Settlement store over a SQLAlchemy session.

    Each write is committed on its own so that a failure on one user or one
    match is rolled back without discarding the units settled before it.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._matches = MatchRepository(session)
        self._bets = BetRepository(session)
        self._scores = ScoreRepository(session)

    def find_unsettled_finished_matches(self) -> list[MatchRecord]:
        try:
            matches = self._matches.get_unsettled_finished_matches()
            return [_to_match_record(match) for match in matches]
        except SQLAlchemyError as exc:
            raise self._fail(exc, resource="matches") from exc
        except _DECODE_ERRORS as exc:
            raise self._undecodable(exc, resource="matches") from exc

    def find_predictions_for_match(self, match_id: int) -> list[PredictionRecord]:
        try:
            bets = self._bets.get_bets_for_match(match_id)
            return [_to_prediction_record(bet) for bet in bets]
        except SQLAlchemyError as exc:
            raise self._fail(exc, resource=f"bets for match {match_id}") from exc
        except _DECODE_ERRORS as exc:
            raise self._undecodable(exc, resource=f"bets for match {match_id}") from exc

    def get_score(self, user_id: str, tournament_id: int) -> ScoreRecord | None:
        try:
            score = self._scores.get_score(user_id, tournament_id)
        except SQLAlchemyError as exc:
            raise self._fail(exc, resource=f"score for user {user_id}") from exc
        return _to_score_record(score) if score is not None else None

    def upsert_score(
        self, user_id: str, tournament_id: int, new_total: int, updated_at: datetime
    ) -> None:
        try:
            self._scores.upsert_score(
                user_id=user_id,
                tournament_id=tournament_id,
                points=new_total,
                updated_at=updated_at,
            )
            self._session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc, resource=f"score for user {user_id}") from exc

    def mark_match_settled(self, match_id: int) -> None:
        try:
            claimed = self._matches.mark_settled(match_id)
            if not claimed:
                self._session.rollback()
                raise StoreError(
                    Conflict(f"match {match_id} was already settled or is not eligible")
                )
            self._session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc, resource=f"match {match_id}") from exc

    def _fail(self, exc: SQLAlchemyError, *, resource: str) -> StoreError:
        self._session.rollback()
        return StoreError(classify_db_error(exc, resource=resource))

    def _undecodable(self, exc: Exception, *, resource: str) -> StoreError:
        self._session.rollback()
        return StoreError(Unexpected(f"invalid stored value in {resource}: {exc}"))


__all__ = ["SqlSettlementStore"]
