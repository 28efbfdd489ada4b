"""Pytest fixtures for commission engine tests."""

from __future__ import annotations

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from commission_engine.events import EventEmitter
from commission_engine.models import Base
from tests.factories import CommissionTestData

# Use in-memory SQLite for tests
# For advisory locks and statement timeouts, use a test Postgres database
TEST_DATABASE_URL = "sqlite://"


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Create a fresh test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, class_=Session, expire_on_commit=False, autoflush=False)


@pytest.fixture
def session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    with session_factory() as session:
        yield session
        session.rollback()


@pytest.fixture
def test_data(session: Session) -> CommissionTestData:
    """Seed the four team members."""
    data = CommissionTestData()
    data.create_team(session)
    return data


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def captured_events(emitter: EventEmitter) -> list:
    """Every event published through the emitter fixture."""
    events: list = []
    emitter.on_all(events.append)
    return events
