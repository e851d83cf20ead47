"""Pytest fixtures for recording sync tests."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Any

import pytest
import pytest_asyncio
from fakes import FakeMediaSenseClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import recsync.models  # noqa: F401  (registers tables on Base.metadata)
from recsync.config import Settings
from recsync.database import Base, get_db
from recsync.main import app
from recsync.services.mediasense_client import get_mediasense_client
from recsync.services.search_indexer import get_index_dispatcher
from recsync.services.sync import SingleFlight

# Test database URL - uses SQLite for isolation
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        mediasense_base_url="https://mediasense.test:8440",
        sync_page_size=100,
        sync_page_delay_ms=0,
        sync_overlap_minutes=30,
        sync_default_lookback_hours=24,
        backfill_retention_days=3,
        backfill_batch_days=1,
        backfill_max_batches_per_run=1,
        debug=True,
    )


@pytest_asyncio.fixture
async def async_engine():
    """Create async engine for testing."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def guard() -> SingleFlight:
    """Fresh single-flight guard so tests never share busy keys."""
    return SingleFlight()


@pytest.fixture
def fake_client() -> FakeMediaSenseClient:
    return FakeMediaSenseClient()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, fake_client: FakeMediaSenseClient
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database and upstream overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mediasense_client] = lambda: fake_client
    app.dependency_overrides[get_index_dispatcher] = lambda: None

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def now() -> datetime:
    return datetime.now(UTC)


@pytest.fixture
def sample_raw_session() -> dict[str, Any]:
    """A fully populated MediaSense session payload."""
    return {
        "sessionId": "SESS-1001",
        "recordingId": "REC-1001",
        "startTime": "2024-01-18T10:30:00.000Z",
        "endTime": "2024-01-18T10:35:30.000Z",
        "direction": "OUTBOUND",
        "ani": "5551230000",
        "dnis": "4155550199",
        "callerName": "Jane Doe",
        "agentId": "agent-7",
        "agentName": "Jane Doe",
        "teamId": "T-EAST",
        "teamName": "East Support",
        "csq": "Billing_CSQ",
        "wrapUpReason": "Resolved",
        "transferCount": 1,
        "holdTime": 45,
        "participants": [
            {"type": "agent", "id": "agent-7", "name": "Jane Doe", "phoneNumber": "1007"},
            {"type": "external", "phoneNumber": "4155550199"},
        ],
        "tracks": [
            {
                "url": "https://mediasense.test/media/REC-1001.wav",
                "codec": "G711U",
                "sampleRate": 8000,
                "channels": 2,
                "size": "2650000",
            }
        ],
        "recorderNode": "ms-node-1",
        "tags": [{"name": "priority", "value": "high"}, {"name": "vip", "value": None}],
        "customFields": {"accountNumber": "AC-991"},
    }

