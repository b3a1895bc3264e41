"""Tournament leaderboards built from accumulated scores."""

from __future__ import annotations

from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pickem.errors import NotFound, StoreError, classify_db_error
from pickem.repositories import LeaderboardRow, MatchRepository, ScoreRepository
from pickem.schemas import Leaderboard, LeaderboardEntry, Pagination, TournamentRef


def assign_competition_ranks(
    rows: Sequence[LeaderboardRow],
    *,
    offset: int = 0,
    first_rank: int | None = None,
) -> list[LeaderboardEntry]:
    """Rank rows already ordered by points desc, username asc.

    Equal totals share a rank and the next distinct total takes its 1-based
    position, so four users on 9, 6, 6, 3 points rank 1, 2, 2, 4. ``offset``
    is the position of the first row in the full ordering; ``first_rank`` is
    the rank of that row when it ties with rows on an earlier page.
    """

    ranked: list[LeaderboardEntry] = []
    current_rank = first_rank if first_rank is not None else offset + 1
    previous_points: int | None = None

    for index, row in enumerate(rows):
        if previous_points is not None and row.points != previous_points:
            current_rank = offset + index + 1
        ranked.append(
            LeaderboardEntry(
                rank=current_rank,
                user_id=row.user_id,
                username=row.username,
                points=row.points,
            )
        )
        previous_points = row.points

    return ranked


class LeaderboardService:
    """Read-only facade over tournament standings."""

    def __init__(self, session: Session) -> None:
        self._match_repo = MatchRepository(session)
        self._score_repo = ScoreRepository(session)

    def get_leaderboard(self, tournament_id: int, *, limit: int = 50, offset: int = 0) -> Leaderboard:
        try:
            tournament = self._match_repo.get_tournament(tournament_id)
            if tournament is None:
                raise StoreError(NotFound("Tournament"))

            total = self._score_repo.count_participants(tournament_id)
            rows = self._score_repo.list_leaderboard(tournament_id, limit=limit, offset=offset)
            first_rank = None
            if rows and offset > 0:
                first_rank = self._score_repo.count_scores_above(tournament_id, rows[0].points) + 1
        except SQLAlchemyError as exc:
            raise StoreError(classify_db_error(exc, resource="Leaderboard")) from exc

        return Leaderboard(
            data=assign_competition_ranks(rows, offset=offset, first_rank=first_rank),
            pagination=Pagination(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + limit < total,
            ),
            tournament=TournamentRef(id=tournament.id, name=tournament.name),
        )


__all__ = ["LeaderboardService", "assign_competition_ranks"]
