"""Shared test fixtures."""

from datetime import datetime
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from family_calendar.core.database import get_session
from family_calendar.main import app
from family_calendar.models import Event
from family_calendar.recurrence import EventStore, SeriesManager

FAMILY_ID = UUID("5b0c7b8e-2f43-4a7e-9d39-0c1a1a5f7e01")
USER_ID = UUID("9f2d4c11-6b3a-4f7e-8a21-3e5c9d0b7a02")
MEMBER_A = UUID("1a111111-1111-4111-8111-111111111111")
MEMBER_B = UUID("2b222222-2222-4222-8222-222222222222")
DRIVER = UUID("3c333333-3333-4333-8333-333333333333")


def make_event(**overrides) -> Event:
    """Build an unsaved event; Monday 2024-01-01 09:00-10:00 by default."""
    fields = {
        "id": uuid4(),
        "family_id": FAMILY_ID,
        "created_by_user_id": USER_ID,
        "title": "Practice",
        "start_time": datetime(2024, 1, 1, 9, 0),
        "end_time": datetime(2024, 1, 1, 10, 0),
    }
    fields.update(overrides)
    return Event(**fields)


def series_template(**overrides) -> dict:
    template = {
        "family_id": str(FAMILY_ID),
        "created_by_user_id": str(USER_ID),
        "title": "Practice",
        "location": "Field 3",
        "start_time": "2024-01-01T09:00:00",
        "end_time": "2024-01-01T10:00:00",
    }
    template.update(overrides)
    return template


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Create a test client with the test database session."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="store")
def store_fixture(session: Session) -> EventStore:
    return EventStore(session)


@pytest.fixture(name="manager")
def manager_fixture(store: EventStore) -> SeriesManager:
    return SeriesManager(store)


@pytest.fixture(name="weekly_series")
def weekly_series_fixture(manager: SeriesManager) -> Event:
    """A ten-week Monday series, 09:00-10:00, assigned to member A."""
    result = manager.create_series(
        series_template(),
        {"type": "weekly", "interval": 1, "days": ["monday"], "endCount": 10},
        [MEMBER_A],
    )
    assert result.success, result.error
    return result.parent_event


@pytest.fixture(name="travel_series")
def travel_series_fixture(manager: SeriesManager) -> Event:
    """A Monday series with an 08:30 arrival and 20 minutes of driving."""
    result = manager.create_series(
        series_template(arrival_time="08:30", drive_minutes=20),
        {"type": "weekly", "interval": 1, "days": ["monday"]},
        [MEMBER_A, MEMBER_B],
        driver_id=DRIVER,
    )
    assert result.success, result.error
    return result.parent_event
