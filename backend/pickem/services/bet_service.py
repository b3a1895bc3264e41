"""Bet placement rules and persistence.

A bet can be created, changed or deleted only while its match is scheduled
and kicks off more than ``BETTING_CLOSE_BUFFER`` from now. Once that window
closes the bet is frozen as input for settlement.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Literal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pickem.domain.models import MatchOutcome, MatchStatus
from pickem.errors import Forbidden, NotFound, StoreError, classify_db_error
from pickem.models import Bet, Match
from pickem.repositories import BetRepository, MatchRepository
from pickem.schemas import BetList, BetWithMatch, Pagination

BETTING_CLOSE_BUFFER = timedelta(minutes=5)

NOT_SCHEDULED_REASON = "Match is not scheduled"
TOO_LATE_REASON = "Match starts in less than 5 minutes"

BetDisplayStatus = Literal["pending", "hit", "miss"]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def betting_closes_at(match: Match) -> datetime:
    return _as_utc(match.match_datetime) - BETTING_CLOSE_BUFFER


def betting_block_reason(match: Match, now: datetime | None = None) -> str | None:
    """Return why bets on ``match`` are frozen, or None while the window is open."""

    if match.status != MatchStatus.SCHEDULED.value:
        return NOT_SCHEDULED_REASON
    now = _as_utc(now or datetime.now(timezone.utc))
    if now >= betting_closes_at(match):
        return TOO_LATE_REASON
    return None


def can_modify_bet(match: Match, now: datetime | None = None) -> bool:
    return betting_block_reason(match, now) is None


def bet_display_status(bet: Bet) -> BetDisplayStatus:
    match = bet.match
    if match.status == MatchStatus.SCHEDULED.value or match.result is None:
        return "pending"
    return "hit" if bet.picked_result == match.result else "miss"


@dataclass(slots=True)
class BetStats:
    total_bets: int = 0
    hits: int = 0
    misses: int = 0
    pending: int = 0
    hit_rate: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_bets": self.total_bets,
            "hits": self.hits,
            "misses": self.misses,
            "pending": self.pending,
            "hit_rate": self.hit_rate,
        }


def calculate_bet_stats(bets: Iterable[Bet]) -> BetStats:
    stats = BetStats()
    for bet in bets:
        stats.total_bets += 1
        status = bet_display_status(bet)
        if status == "hit":
            stats.hits += 1
        elif status == "miss":
            stats.misses += 1
        else:
            stats.pending += 1

    resolved = stats.hits + stats.misses
    # Half-up rounding of the hit percentage.
    stats.hit_rate = (stats.hits * 200 + resolved) // (2 * resolved) if resolved else 0
    return stats


class BetService:
    """Create, change and delete bets on behalf of an explicit owner."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._bets = BetRepository(session)
        self._matches = MatchRepository(session)

    def create_bet(
        self,
        user_id: str,
        match_id: int,
        picked_result: MatchOutcome,
        *,
        now: datetime | None = None,
    ) -> Bet:
        def _create() -> Bet:
            match = self._matches.get_match(match_id)
            if match is None:
                raise StoreError(NotFound("Match"))
            self._ensure_window_open(match, now)
            return self._bets.create_bet(
                user_id=user_id,
                match_id=match_id,
                picked_result=MatchOutcome(picked_result).value,
            )

        return self._mutate(_create, resource="Bet")

    def update_bet(
        self,
        bet_id: int,
        user_id: str,
        picked_result: MatchOutcome,
        *,
        now: datetime | None = None,
    ) -> Bet:
        def _update() -> Bet:
            bet = self._owned_bet(bet_id, user_id)
            self._ensure_window_open(bet.match, now)
            return self._bets.update_pick(bet, MatchOutcome(picked_result).value)

        return self._mutate(_update, resource="Bet")

    def delete_bet(self, bet_id: int, user_id: str, *, now: datetime | None = None) -> None:
        def _delete() -> None:
            bet = self._owned_bet(bet_id, user_id)
            self._ensure_window_open(bet.match, now)
            self._bets.delete_bet(bet)

        self._mutate(_delete, resource="Bet")

    def list_user_bets(
        self,
        user_id: str,
        *,
        tournament_id: int | None = None,
        match_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> BetList:
        bets, total = self._bets.list_user_bets(
            user_id,
            tournament_id=tournament_id,
            match_id=match_id,
            limit=limit,
            offset=offset,
        )
        return BetList(
            data=[BetWithMatch.model_validate(bet) for bet in bets],
            pagination=Pagination(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + limit < total,
            ),
        )

    def user_bet_stats(self, user_id: str, *, tournament_id: int | None = None) -> BetStats:
        return calculate_bet_stats(self._bets.all_user_bets(user_id, tournament_id=tournament_id))

    def _owned_bet(self, bet_id: int, user_id: str) -> Bet:
        bet = self._bets.get_bet(bet_id)
        if bet is None:
            raise StoreError(NotFound("Bet"))
        if bet.user_id != user_id:
            raise StoreError(Forbidden("Bet belongs to another user"))
        return bet

    @staticmethod
    def _ensure_window_open(match: Match, now: datetime | None) -> None:
        reason = betting_block_reason(match, now)
        if reason is not None:
            raise StoreError(Forbidden(reason))

    def _mutate(self, operation, *, resource: str):
        try:
            outcome = operation()
            self._session.commit()
        except StoreError:
            self._session.rollback()
            raise
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(classify_db_error(exc, resource=resource)) from exc
        return outcome


__all__ = [
    "BETTING_CLOSE_BUFFER",
    "BetService",
    "BetStats",
    "bet_display_status",
    "betting_block_reason",
    "betting_closes_at",
    "calculate_bet_stats",
    "can_modify_bet",
]
