import os

# Configure the service for an in-memory store before anything imports it
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SWEEP_SCHEDULER_ENABLED"] = "false"
os.environ["AUTO_CREATE_SCHEMA"] = "false"
os.environ["NOTIFICATION_SERVICE_URL"] = ""
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["OPS_API_KEY"] = ""

import uuid  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any, AsyncGenerator, Awaitable, Callable, Generator, List, Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

import callmatch.models.db  # noqa: E402,F401
from callmatch.clients.notification_client import NotificationClient  # noqa: E402
from callmatch.config import MatchingPolicy  # noqa: E402
from callmatch.database import Base  # noqa: E402
from callmatch.main import app  # noqa: E402
from callmatch.models.db.participant_model import ParticipantModel  # noqa: E402
from callmatch.models.db.queue_entry_model import QueueEntryModel  # noqa: E402
from callmatch.models.db.room_model import RoomModel  # noqa: E402

START = datetime(2026, 1, 5, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic wall clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def test_db(
    session_factory: async_sessionmaker,
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session for integration tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> MatchingPolicy:
    return MatchingPolicy()


@pytest.fixture
def notifier() -> NotificationClient:
    """Notification client with delivery disabled, with `notify` recorded."""
    client = NotificationClient(base_url="", api_key="")
    client.notify = AsyncMock(return_value=False)  # type: ignore[method-assign]
    return client


@pytest.fixture
def make_entry(
    test_db: AsyncSession, clock: FakeClock
) -> Callable[..., Awaitable[QueueEntryModel]]:
    """Insert a queue entry directly, bypassing admission."""

    async def _make(
        uid: str,
        gender: Optional[str] = "m",
        want_gender: Optional[str] = "any",
        exclusions: Optional[List[str]] = None,
        enqueued_at: Optional[datetime] = None,
        status: str = "waiting",
    ) -> QueueEntryModel:
        at = enqueued_at or clock()
        entry = QueueEntryModel(
            uid=uid,
            status=status,
            gender=gender,
            want_gender=want_gender,
            exclusions=list(exclusions or []),
            enqueued_at=at,
            last_heartbeat_at=at,
        )
        test_db.add(entry)
        await test_db.commit()
        return entry

    return _make


@pytest.fixture
def make_room(
    test_db: AsyncSession, clock: FakeClock
) -> Callable[..., Awaitable[RoomModel]]:
    """Insert a room with both members pointed at it."""

    async def _make(
        user1: str,
        user2: str,
        status: str = "pending",
        heartbeats: Any = "now",
    ) -> RoomModel:
        now = clock()
        if heartbeats == "now":
            heartbeats = (now, now)
        room = RoomModel(
            id=uuid.uuid4(),
            user1=user1,
            user2=user2,
            status=status,
            created_at=now,
            user1_heartbeat_at=heartbeats[0],
            user2_heartbeat_at=heartbeats[1],
        )
        test_db.add(room)
        for uid in (user1, user2):
            test_db.add(
                ParticipantModel(uid=uid, active_room_id=room.id, match_phase="matched")
            )
        await test_db.commit()
        return room

    return _make


@pytest.fixture(scope="function")
def mock_db() -> Generator[AsyncMock, Any, None]:
    """Create a mock database session for unit tests."""
    mock_session = AsyncMock()
    mock_session.commit = AsyncMock()
    mock_session.rollback = AsyncMock()
    mock_session.close = AsyncMock()
    mock_session.execute = AsyncMock()
    mock_session.add = MagicMock()  # add is sync, not async

    yield mock_session


@pytest.fixture
def client() -> Generator[TestClient, Any, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as test_client:
        yield test_client
