"""Tests for API endpoints."""

from datetime import UTC, datetime, timedelta

import pytest
from fakes import make_session

from recsync.config import get_settings
from recsync.main import app
from recsync.services.mediasense_client import get_mediasense_client
from recsync.services.sync import sync_guard

settings = get_settings()
SYNC_URL = f"{settings.api_v1_prefix}/sync/recordings"


class TestHealthEndpoints:
    """Tests for health and probe endpoints."""

    @pytest.mark.asyncio
    async def test_health_empty(self, client):
        """Test health before any sync has run."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["recordings"]["record_count"] == 0
        assert data["recordings"]["status"] is None
        assert data["recordings"]["is_syncing"] is False

    @pytest.mark.asyncio
    async def test_probes(self, client):
        assert (await client.get("/ready")).json() == {"status": "ready"}
        assert (await client.get("/live")).json() == {"status": "alive"}


class TestRootEndpoint:
    """Tests for root endpoint."""

    @pytest.mark.asyncio
    async def test_root_endpoint(self, client):
        """Test root endpoint returns API info."""
        response = await client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Recording Sync API"
        assert "version" in data
        assert "docs" in data


class TestSyncEndpoints:
    """Tests for the sync admin endpoints."""

    @pytest.mark.asyncio
    async def test_trigger_sync(self, client, fake_client):
        """Test a manual trigger runs the backfill and records history."""
        day_one = datetime.now(UTC) - timedelta(days=settings.backfill_retention_days, hours=-2)
        fake_client.sessions = [
            make_session("S-API-1", day_one, day_one + timedelta(minutes=3)),
            make_session("S-API-2", day_one + timedelta(minutes=5)),
        ]

        response = await client.post(SYNC_URL)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["mode"] == "backfill"
        assert data["stats"]["created"] == 2

        status = (await client.get(f"{SYNC_URL}/status")).json()
        assert status["total_created"] == 2
        assert status["backfill_complete"] is False
        assert status["sync_enabled"] is True
        assert len(status["history"]) == 1
        assert status["history"][0]["triggered_by"] == "manual"

        health = (await client.get("/health")).json()
        assert health["recordings"]["record_count"] == 2

    @pytest.mark.asyncio
    async def test_trigger_conflict_while_running(self, client, fake_client):
        """Test a trigger during an active run gets 409 and is not queued."""
        with sync_guard.try_acquire(settings.sync_type):
            response = await client.post(SYNC_URL)

        assert response.status_code == 409
        assert response.json()["detail"] == "Sync already in progress"
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_trigger_not_configured(self, client):
        app.dependency_overrides[get_mediasense_client] = lambda: None

        response = await client.post(SYNC_URL)

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_status_creates_state(self, client):
        response = await client.get(f"{SYNC_URL}/status")

        assert response.status_code == 200
        data = response.json()
        assert data["sync_type"] == settings.sync_type
        assert data["status"] == "IDLE"
        assert data["checkpoint"]["mode"] == "backfill"
        assert data["history"] == []
        assert data["is_syncing"] is False

    @pytest.mark.asyncio
    async def test_reset(self, client):
        await client.post(SYNC_URL)

        response = await client.post(f"{SYNC_URL}/reset")

        assert response.status_code == 200
        status = (await client.get(f"{SYNC_URL}/status")).json()
        assert status["status"] == "IDLE"
        assert status["checkpoint"] == {"mode": "backfill", "last_sync_time": None, "progress": None}

    @pytest.mark.asyncio
    async def test_reset_conflict_while_running(self, client):
        with sync_guard.try_acquire(settings.sync_type):
            response = await client.post(f"{SYNC_URL}/reset")

        assert response.status_code == 409
