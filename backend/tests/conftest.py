"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app import database
from app.database import get_db
from app.main import app
from app.models import Base
from app.services.realtime import build_presence_registry, get_dispatcher, get_presence_registry
from app.services.users import UserDirectory
from murmur.realtime import FanoutDispatcher, PresenceRegistry


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine, monkeypatch) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine.

    Short-lived sessions opened outside request handlers (websocket auth,
    presence write-through) go through ``app.database.SessionLocal``, so it
    is pointed at the same engine.
    """

    factory = sessionmaker(bind=test_engine, autoflush=False, future=True)
    monkeypatch.setattr(database, "SessionLocal", factory)
    return factory


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user(session_factory):
    """Create and commit a user, returning its id."""

    def _make(username: str, password: str = "secret-pass") -> int:
        with session_factory() as session:
            user = UserDirectory(session).create(username, password)
            session.commit()
            return user.id

    return _make


@pytest.fixture()
def dispatcher() -> FanoutDispatcher:
    return FanoutDispatcher()


@pytest.fixture()
def presence_registry(dispatcher, session_factory) -> PresenceRegistry:
    return build_presence_registry(dispatcher)


@pytest.fixture()
def client(session_factory, dispatcher, presence_registry) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient with the database and realtime singletons overridden."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_presence_registry] = lambda: presence_registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

