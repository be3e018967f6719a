"""Engine, session factory and request-scoped sessions."""
from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings
from app.models.base import Base

engine: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None


def _connect_options(database_url: str) -> dict[str, object]:
    if database_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a threadpool.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 1800}


def init_engine() -> Engine:
    """Build the engine from ``DATABASE_URL`` once; later calls return it."""

    global engine, SessionLocal
    if engine is not None:
        return engine

    url = get_settings().database_url
    engine = create_engine(url, future=True, **_connect_options(url))
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
    return engine


def get_engine() -> Engine:
    return engine if engine is not None else init_engine()


def get_sessionmaker() -> sessionmaker[Session]:
    if SessionLocal is None:
        init_engine()
    assert SessionLocal is not None
    return SessionLocal


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite ignores ``mpesa_callbacks.payment_id`` unless told otherwise."""

    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def ping() -> bool:
    """Round-trip ``SELECT 1``; connection errors propagate to the caller."""

    with get_engine().connect() as conn:
        conn.execute(text("SELECT 1"))
    return True


def create_all() -> None:
    Base.metadata.create_all(bind=get_engine())


def close_engine() -> None:
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
    engine = None
    SessionLocal = None


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for work outside a request, e.g. scheduler jobs."""

    session = get_sessionmaker()()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request."""

    session = get_sessionmaker()()
    try:
        yield session
    finally:
        session.close()


__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "close_engine",
    "create_all",
    "get_db",
    "get_engine",
    "get_sessionmaker",
    "init_engine",
    "ping",
    "session_scope",
]
