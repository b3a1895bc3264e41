"""Bet (prediction) persistence helpers."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from pickem.models import Bet, Match


class BetRepository:
    """Encapsulate bet persistence concerns."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def create_bet(self, *, user_id: str, match_id: int, picked_result: str) -> Bet:
        record = Bet(user_id=user_id, match_id=match_id, picked_result=picked_result)
        self._session.add(record)
        self._session.flush()
        return record

    def update_pick(self, bet: Bet, picked_result: str) -> Bet:
        bet.picked_result = picked_result
        self._session.flush()
        return bet

    def delete_bet(self, bet: Bet) -> None:
        self._session.delete(bet)
        self._session.flush()

    # ------------------------------------------------------------------
    # Queries

    def get_bet(self, bet_id: int) -> Bet | None:
        query = select(Bet).options(selectinload(Bet.match)).where(Bet.id == bet_id)
        return self._session.execute(query).scalar_one_or_none()

    def get_bets_for_match(self, match_id: int) -> list[Bet]:
        query = select(Bet).where(Bet.match_id == match_id).order_by(Bet.id.asc())
        return list(self._session.execute(query).scalars().all())

    def list_user_bets(
        self,
        user_id: str,
        *,
        tournament_id: int | None = None,
        match_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Bet], int]:
        filters: list[Any] = [Bet.user_id == user_id]
        if tournament_id is not None:
            filters.append(Match.tournament_id == tournament_id)
        if match_id is not None:
            filters.append(Bet.match_id == match_id)

        query = (
            select(Bet)
            .join(Match, Bet.match)
            .options(selectinload(Bet.match))
            .where(*filters)
            .order_by(Bet.created_at.desc(), Bet.id.desc())
            .limit(limit)
            .offset(offset)
        )
        total_query = select(func.count(Bet.id)).join(Match, Bet.match).where(*filters)

        bets = list(self._session.execute(query).scalars().all())
        total = self._session.execute(total_query).scalar_one()
        return bets, total

    def all_user_bets(self, user_id: str, *, tournament_id: int | None = None) -> list[Bet]:
        filters: list[Any] = [Bet.user_id == user_id]
        if tournament_id is not None:
            filters.append(Match.tournament_id == tournament_id)
        query = (
            select(Bet)
            .join(Match, Bet.match)
            .options(selectinload(Bet.match))
            .where(*filters)
        )
        return list(self._session.execute(query).scalars().all())


__all__ = ["BetRepository"]
