"""Database session management.

Provides engine and session factories keyed by database URL.
The URL defaults to a local SQLite file and can be overridden with
the STATION_STATS_DATABASE_URL environment variable.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from station_stats.db.schema import Base

DATABASE_URL_ENV = "STATION_STATS_DATABASE_URL"
DEFAULT_DATABASE_URL = "sqlite:///data/station_stats.db"

# Module-level engine cache for connection pooling
_engine_cache: dict[str, Engine] = {}

# Module-level session factory cache
_session_factory_cache: dict[str, sessionmaker] = {}


def database_url() -> str:
    """Resolve the configured database URL."""
    return os.environ.get(DATABASE_URL_ENV, DEFAULT_DATABASE_URL)


def get_engine(url: str | None = None) -> Engine:
    """Get SQLAlchemy engine for the database.

    Engines are cached by URL. SQLite engines share a single connection
    across threads (StaticPool, check_same_thread=False); other backends
    use the default pool.

    Args:
        url: SQLAlchemy database URL. Defaults to database_url().

    Returns:
        SQLAlchemy engine instance (cached).
    """
    if url is None:
        url = database_url()

    if url in _engine_cache:
        return _engine_cache[url]

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(url, echo=False, pool_pre_ping=True)

    _engine_cache[url] = engine
    return engine


def get_session_factory(url: str | None = None) -> sessionmaker:
    """Get cached session factory for the database."""
    if url is None:
        url = database_url()

    if url in _session_factory_cache:
        return _session_factory_cache[url]

    factory = sessionmaker(bind=get_engine(url))
    _session_factory_cache[url] = factory
    return factory


def get_session(url: str | None = None) -> Session:
    """Get a database session.

    Note: Caller is responsible for closing the session. For automatic
    resource management, use get_db_session() context manager instead.
    """
    return get_session_factory(url)()


@contextmanager
def get_db_session(url: str | None = None) -> Generator[Session, None, None]:
    """Context manager for database sessions with automatic cleanup.

    Commits on successful exit, rolls back on exception, and always
    closes the session.

    Example:
        with get_db_session() as session:
            update_platform_stats(session, measurements)
            # Auto-commits on exit, rolls back on exception
    """
    session = get_session(url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(url: str | None = None) -> None:
    """Create any missing tables."""
    engine = get_engine(url)
    Base.metadata.create_all(engine)
