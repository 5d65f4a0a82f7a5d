"""Shared pytest fixtures for station_stats tests."""

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from station_stats.db.schema import Base

# Pinned reference date so tests never race midnight or month-end.
TODAY = date(2026, 3, 15)


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return sessionmaker(bind=engine)


@pytest.fixture
def session(session_factory):
    """Create a database session for testing."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """Session factory on a SQLite file, so each session has its own connection."""
    engine = create_engine(f"sqlite:///{tmp_path / 'station_stats.db'}", echo=False)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def today():
    """Reference date shared by a test and the jobs it runs."""
    return TODAY
