from __future__ import annotations

import os
import sys
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest

from pickem import models
from pickem.core.config import Settings
from pickem.db import Base, build_engine, build_session_factory


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'pickem-test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_scope_factory(session_factory):
    """Session scope bound to the test engine, shaped like pickem.db.session_scope."""

    @contextmanager
    def _scope():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _scope


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 3, 11, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def tournament(db_session) -> models.Tournament:
    record = models.Tournament(name="UEFA Champions League", api_tournament_id=2)
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def make_match(db_session, tournament, now):
    def _make(
        *,
        status: str = "SCHEDULED",
        result: str | None = None,
        kickoff: datetime | None = None,
        is_scored: bool = False,
        api_match_id: int | None = None,
        home_team: str = "Arsenal",
        away_team: str = "PSV",
    ) -> models.Match:
        record = models.Match(
            tournament_id=tournament.id,
            home_team=home_team,
            away_team=away_team,
            match_datetime=kickoff or now + timedelta(days=1),
            status=status,
            result=result,
            is_scored=is_scored,
            api_match_id=api_match_id,
        )
        db_session.add(record)
        db_session.commit()
        return record

    return _make


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path/'pickem.db'}",
        football_api_key="test-key",
        sync_season=2024,
        sync_live_batch_size=2,
        api_tokens="admin-token:admin-1,user-token:user-1",
        admin_user_ids="admin-1",
    )
