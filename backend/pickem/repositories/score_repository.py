"""Score (per-tournament points) persistence helpers."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pickem.models import Profile, Score

from .types import LeaderboardRow


class ScoreRepository:
    """Encapsulate score reads and writes, including leaderboard queries."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_score(self, user_id: str, tournament_id: int) -> Score | None:
        return self._session.get(Score, (user_id, tournament_id))

    def upsert_score(
        self,
        *,
        user_id: str,
        tournament_id: int,
        points: int,
        updated_at: datetime,
    ) -> Score:
        existing = self.get_score(user_id, tournament_id)
        if existing is None:
            existing = Score(user_id=user_id, tournament_id=tournament_id)
            self._session.add(existing)
        existing.points = points
        existing.updated_at = updated_at
        self._session.flush()
        return existing

    def count_participants(self, tournament_id: int) -> int:
        query = (
            select(func.count())
            .select_from(Score)
            .join(Profile, Profile.user_id == Score.user_id)
            .where(Score.tournament_id == tournament_id)
        )
        return self._session.execute(query).scalar_one()

    def count_scores_above(self, tournament_id: int, points: int) -> int:
        query = (
            select(func.count())
            .select_from(Score)
            .join(Profile, Profile.user_id == Score.user_id)
            .where(Score.tournament_id == tournament_id, Score.points > points)
        )
        return self._session.execute(query).scalar_one()

    def list_leaderboard(
        self,
        tournament_id: int,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LeaderboardRow]:
        query = (
            select(Score.user_id, Profile.username, Score.points)
            .join(Profile, Profile.user_id == Score.user_id)
            .where(Score.tournament_id == tournament_id)
            .order_by(Score.points.desc(), Profile.username.asc())
            .limit(limit)
            .offset(offset)
        )
        rows = self._session.execute(query).all()
        return [
            LeaderboardRow(user_id=user_id, username=username, points=points)
            for user_id, username, points in rows
        ]


__all__ = ["ScoreRepository"]
