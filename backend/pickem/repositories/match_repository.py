"""Match and tournament data access helpers."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from pickem.domain import NormalizedFixture
from pickem.models import Match, MatchStatus, Tournament


class MatchRepository:
    """Encapsulate match and tournament persistence concerns."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Tournaments

    def get_tournament(self, tournament_id: int) -> Tournament | None:
        return self._session.get(Tournament, tournament_id)

    def upsert_tournament(self, *, api_tournament_id: int, name: str) -> Tournament:
        query = select(Tournament).where(Tournament.api_tournament_id == api_tournament_id)
        existing = self._session.execute(query).scalar_one_or_none()
        if existing is None:
            existing = Tournament(api_tournament_id=api_tournament_id, name=name)
            self._session.add(existing)
        else:
            existing.name = name
        self._session.flush()
        return existing

    # ------------------------------------------------------------------
    # Matches

    def get_match(self, match_id: int) -> Match | None:
        return self._session.get(Match, match_id)

    def get_unsettled_finished_matches(self) -> list[Match]:
        query = (
            select(Match)
            .where(
                Match.status == MatchStatus.FINISHED.value,
                Match.is_scored.is_(False),
                Match.result.is_not(None),
            )
            .order_by(Match.id.asc())
        )
        return list(self._session.execute(query).scalars().all())

    def mark_settled(self, match_id: int) -> bool:
        """Flip ``is_scored`` for an eligible, not yet settled match.

        Returns False when no row was claimed: the match is missing, already
        settled, or not eligible.
        """

        statement = (
            update(Match)
            .where(
                Match.id == match_id,
                Match.is_scored.is_(False),
                Match.status == MatchStatus.FINISHED.value,
                Match.result.is_not(None),
            )
            .values(is_scored=True)
            .execution_options(synchronize_session="fetch")
        )
        outcome = self._session.execute(statement)
        return outcome.rowcount == 1

    def existing_api_match_ids(self, tournament_id: int) -> set[int]:
        query = select(Match.api_match_id).where(
            Match.tournament_id == tournament_id,
            Match.api_match_id.is_not(None),
        )
        return {value for value in self._session.execute(query).scalars().all()}

    def latest_match_datetime(self, tournament_id: int) -> datetime | None:
        query = select(func.max(Match.match_datetime)).where(Match.tournament_id == tournament_id)
        return self._session.execute(query).scalar_one_or_none()

    def get_matches_needing_refresh(self, *, now: datetime) -> list[Match]:
        """In-play matches plus scheduled ones whose kickoff already passed."""

        query = (
            select(Match)
            .where(
                Match.api_match_id.is_not(None),
                or_(
                    Match.status == MatchStatus.IN_PLAY.value,
                    and_(
                        Match.status == MatchStatus.SCHEDULED.value,
                        Match.match_datetime <= now,
                    ),
                ),
            )
            .order_by(Match.match_datetime.asc(), Match.id.asc())
        )
        return list(self._session.execute(query).scalars().all())

    def insert_fixture(self, tournament_id: int, fixture: NormalizedFixture) -> Match:
        record = Match(
            tournament_id=tournament_id,
            api_match_id=fixture.api_match_id,
        )
        self._apply_fixture(record, fixture)
        self._session.add(record)
        self._session.flush()
        return record

    def apply_fixture(self, match: Match, fixture: NormalizedFixture) -> Match:
        self._apply_fixture(match, fixture)
        self._session.flush()
        return match

    @staticmethod
    def _apply_fixture(match: Match, fixture: NormalizedFixture) -> None:
        match.home_team = fixture.home_team
        match.away_team = fixture.away_team
        if fixture.match_datetime is not None:
            match.match_datetime = fixture.match_datetime
        match.status = fixture.status.value
        # A settled match keeps the outcome it was scored with.
        if not match.is_scored:
            match.result = fixture.outcome.value if fixture.outcome else None
        match.home_score = fixture.home_score
        match.away_score = fixture.away_score


__all__ = ["MatchRepository"]
