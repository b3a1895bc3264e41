from collections.abc import Generator, Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .core.config import settings


def _prepare_sqlite_file(url: str) -> None:
    database = make_url(url).database
    if not database or database == ":memory:":
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    # Bets and scores reference matches and tournaments; SQLite only enforces
    # those references when asked to on every connection.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _postgres_connect_args(driver: str) -> dict[str, object]:
    connect_args: dict[str, object] = {
        "keepalives": 1,
        "keepalives_idle": 120,
        "keepalives_interval": 30,
        "keepalives_count": 5,
    }
    # Transaction poolers reject PREPARE.
    if driver == "psycopg":
        connect_args["prepare_threshold"] = None
    return connect_args


def build_engine(url: str, *, echo: bool = False) -> Engine:
    parsed = make_url(url)
    backend = parsed.get_backend_name()
    engine_kwargs: dict[str, object] = {"echo": echo, "future": True, "pool_pre_ping": True}

    if backend == "sqlite":
        _prepare_sqlite_file(url)
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    elif backend.startswith("postgresql"):
        # Recycle pooled connections before pooler idle timeouts close them
        # between scheduled settlement ticks.
        engine_kwargs["pool_recycle"] = 300
        engine_kwargs["connect_args"] = _postgres_connect_args(parsed.get_driver_name())
    else:
        engine_kwargs["pool_recycle"] = 300

    engine = create_engine(url, **engine_kwargs)
    if backend == "sqlite":
        _enable_sqlite_foreign_keys(engine)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=True, autocommit=False, future=True)


engine = build_engine(settings.resolved_database_url, echo=settings.debug)
SessionLocal = build_session_factory(engine)
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for jobs outside a request: commit on success, roll back on error."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
