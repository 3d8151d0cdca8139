"""
Shared pytest fixtures.

Uses a file-backed SQLite database so no Postgres is required for tests.
SQLite understands the same ON CONFLICT upserts the services issue against
Postgres.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base, get_db
from app.main import app
from app.routers.notifications import get_session_factory, get_transport
from app.services.transports import ReminderPayload
from app.services.users import create_user
from app.core.errors import DeliveryError

SQLITE_URL = "sqlite:///./test_engagement.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class FakeTransport:
    """Records reminders; fails the first `failures` deliveries."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = 0
        self.sent: list[tuple[int, ReminderPayload]] = []

    def dispatch_reminder(self, user_id: int, payload: ReminderPayload) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise DeliveryError(message=f"push gateway unavailable (call {self.calls})")
        self.sent.append((user_id, payload))

    def sent_to(self, user_id: int) -> list[ReminderPayload]:
        return [p for uid, p in self.sent if uid == user_id]


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def session_factory():
    return TestingSessionLocal


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def client(db, transport):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_transport] = lambda: transport
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    """Factory: a fresh user per call, so tests never share history."""
    def _make(timezone: str = "UTC"):
        return create_user(db, timezone=timezone)

    return _make


@pytest.fixture()
def make_transport():
    return FakeTransport
