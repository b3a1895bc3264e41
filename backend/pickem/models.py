from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .domain.models import MatchOutcome, MatchStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_type(enum_cls: type) -> Enum:
    # Stores the member value and rejects anything outside the enum on write.
    return Enum(
        enum_cls,
        name=f"{enum_cls.__name__.lower()}_enum",
        native_enum=False,
        create_constraint=True,
        validate_strings=True,
        length=16,
        values_callable=lambda members: [member.value for member in members],
    )


class Tournament(Base):
    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    api_tournament_id: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    matches: Mapped[list["Match"]] = relationship("Match", back_populates="tournament")


class Profile(Base):
    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    username: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Match(Base):
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(Integer, ForeignKey("tournaments.id"), nullable=False)
    home_team: Mapped[str] = mapped_column(String, nullable=False)
    away_team: Mapped[str] = mapped_column(String, nullable=False)
    match_datetime: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[MatchStatus] = mapped_column(
        _enum_type(MatchStatus), nullable=False, default=MatchStatus.SCHEDULED
    )
    result: Mapped[MatchOutcome | None] = mapped_column(_enum_type(MatchOutcome), nullable=True)
    home_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    away_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    api_match_id: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)
    is_scored: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    tournament: Mapped[Tournament] = relationship("Tournament", back_populates="matches")
    bets: Mapped[list["Bet"]] = relationship("Bet", back_populates="match")

    __table_args__ = (
        Index("ix_matches_settlement", "status", "is_scored"),
        Index("ix_matches_tournament_datetime", "tournament_id", "match_datetime"),
    )


class Bet(Base):
    __tablename__ = "bets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    match_id: Mapped[int] = mapped_column(Integer, ForeignKey("matches.id"), nullable=False)
    picked_result: Mapped[MatchOutcome] = mapped_column(_enum_type(MatchOutcome), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    match: Mapped[Match] = relationship("Match", back_populates="bets")

    __table_args__ = (
        UniqueConstraint("user_id", "match_id", name="uq_bets_user_match"),
        Index("ix_bets_match_id", "match_id"),
    )


class Score(Base):
    __tablename__ = "scores"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    tournament_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tournaments.id"), primary_key=True
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (Index("ix_scores_tournament_points", "tournament_id", "points"),)
