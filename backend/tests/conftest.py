"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from app.api import ws as ws_module
from app.core.security import create_access_token
from app.database import get_db
from app.main import app
from app.models import Base, FriendLink, FriendRequestStatus, User
from app.services.notifier import get_event_notifier


class RecordingNotifier:
    """Notifier double that keeps every event instead of delivering it."""

    def __init__(self) -> None:
        self.events: list[tuple[str, int, str, dict[str, Any]]] = []
        self.disconnected: list[tuple[int, int]] = []
        self.closed_rooms: list[int] = []

    def notify_user(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append(("user", user_id, event_type, payload))

    def notify_room(self, room_id: int, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append(("room", room_id, event_type, payload))

    def disconnect_from_room(self, room_id: int, user_id: int) -> None:
        self.disconnected.append((room_id, user_id))

    def close_room(self, room_id: int) -> None:
        self.closed_rooms.append(room_id)

    def of_type(self, event_type: str) -> list[tuple[str, int, str, dict[str, Any]]]:
        return [event for event in self.events if event[2] == event_type]

    def recipients(self, event_type: str) -> set[int]:
        return {target for _scope, target, kind, _payload in self.events if kind == event_type}


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
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, future=True)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def make_user(session_factory) -> Callable[..., int]:
    """Create a user and return its identifier."""

    def _make_user(login: str, display_name: str | None = None) -> int:
        with session_factory() as session:
            user = User(login=login, display_name=display_name)
            session.add(user)
            session.commit()
            return user.id

    return _make_user


@pytest.fixture()
def befriend(session_factory) -> Callable[[int, int], None]:
    """Record an accepted friendship between two users."""

    def _befriend(user_a: int, user_b: int) -> None:
        with session_factory() as session:
            session.add(
                FriendLink(
                    requester_id=user_a,
                    addressee_id=user_b,
                    status=FriendRequestStatus.ACCEPTED,
                )
            )
            session.commit()

    return _befriend


@pytest.fixture()
def auth_headers() -> Callable[[int], dict[str, str]]:
    """Build bearer headers for a user identifier."""

    def _auth_headers(user_id: int) -> dict[str, str]:
        token = create_access_token({"sub": str(user_id)})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture()
def client(session_factory, monkeypatch) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient with the database dependency overridden."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    @contextmanager
    def override_db_session() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(ws_module, "get_db_session", override_db_session)
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def recording_client(client, notifier) -> TestClient:
    """TestClient whose room events are captured by ``notifier``."""

    app.dependency_overrides[get_event_notifier] = lambda: notifier
    return client
