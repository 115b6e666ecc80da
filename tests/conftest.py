"""Pytest configuration and fixtures."""

import os
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from reminder_engine.database import Base, get_db, make_engine
from reminder_engine.main import app
from reminder_engine.models import Client, Reminder
from reminder_engine.models.enums import ReminderChannel
from reminder_engine.services.delivery_gateway import (
    DeliveryGateway,
    DeliveryOutcome,
    get_delivery_gateway,
)
from reminder_engine.services.reminder_store import ReminderStore

# Use test database - PostgreSQL when TEST_DATABASE_URL is set, SQLite locally
SQLALCHEMY_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///./test.db")

engine = make_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PROJECT_ID = "proj-0001"
T0 = datetime(2030, 1, 1, 9, 0, tzinfo=UTC)


class StubSender:
    """Channel sender that records messages and returns queued outcomes."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, object]] = []
        self.outcomes: list[DeliveryOutcome] = []

    def send(self, address, message):
        self.sent.append((address, message))
        if self.outcomes:
            return self.outcomes.pop(0)
        return DeliveryOutcome.ok(provider_message_id=f"stub-{len(self.sent)}")


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in SQLALCHEMY_DATABASE_URL:
        from sqlalchemy_utils import create_database, database_exists

        if not database_exists(SQLALCHEMY_DATABASE_URL):
            create_database(SQLALCHEMY_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    # Clean up all data after test
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def email_sender():
    return StubSender()


@pytest.fixture
def sms_sender():
    return StubSender()


@pytest.fixture
def gateway(email_sender, sms_sender):
    """Real gateway wired to stub senders."""
    gw = DeliveryGateway(
        {ReminderChannel.EMAIL: email_sender, ReminderChannel.SMS: sms_sender},
        timeout_seconds=2,
        max_workers=2,
    )
    yield gw
    gw.shutdown()


@pytest.fixture(scope="function")
def client(db, gateway):
    """Create a test client with database and gateway overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_delivery_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def actor_headers():
    """Headers the upstream gateway adds for an authenticated caller."""
    return {"X-Actor-Id": "user-42"}


@pytest.fixture
def store(db):
    return ReminderStore(db)


@pytest.fixture
def make_client(db):
    """Factory for client rows."""

    def _make(name="Ada Lovelace", email="ada@example.com", phone="+15550100", **kwargs):
        row = Client(
            project_id=kwargs.pop("project_id", PROJECT_ID),
            name=name,
            email=email,
            phone=phone,
            **kwargs,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make


@pytest.fixture
def make_reminder(store, make_client):
    """Factory for pending reminders, bypassing the API's future-time check.

    Reminders without an explicit client share one default client.
    """
    default_client = []

    def _make(client=None, scheduled_at=T0, channel=ReminderChannel.EMAIL, meta=None, **kwargs):
        if client is None:
            if not default_client:
                default_client.append(make_client())
            client = default_client[0]
        reminder = Reminder(
            project_id=client.project_id,
            client_id=client.id,
            channel=channel,
            scheduled_at=scheduled_at,
            meta=meta or {},
            **kwargs,
        )
        reminder_id = store.create(reminder)
        return store.get(reminder_id)

    return _make
