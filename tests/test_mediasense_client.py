"""Tests for the MediaSense client."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from recsync.services.mediasense_client import (
    QUERY_SESSIONS_PATH,
    MediaSenseClient,
    MediaSenseClientError,
    SessionQueryResponse,
)

FROM = datetime(2024, 1, 18, 0, 0, tzinfo=UTC)
TO = datetime(2024, 1, 19, 0, 0, tzinfo=UTC)


def make_client(handler, **kwargs) -> MediaSenseClient:
    return MediaSenseClient(
        base_url="https://mediasense.test:8440/",
        username="api",
        password="secret",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestMediaSenseClient:
    """Tests for MediaSenseClient."""

    def test_init_requires_base_url(self):
        with pytest.raises(MediaSenseClientError):
            MediaSenseClient(base_url=None)

    def test_init_with_credentials(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        assert client.base_url == "https://mediasense.test:8440"
        assert client.auth is not None

    @pytest.mark.asyncio
    async def test_query_sessions_success(self):
        """Test the query body and a successful page."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"responseCode": 2000, "responseBody": {"sessions": [{"sessionId": "S-1"}]}},
            )

        client = make_client(handler)
        response = await client.query_sessions(FROM, TO, offset=200, limit=50)

        assert response.success is True
        assert response.status_code == 200
        assert response.data["responseBody"]["sessions"][0]["sessionId"] == "S-1"

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == QUERY_SESSIONS_PATH
        assert request.headers["Authorization"].startswith("Basic ")
        body = json.loads(request.content)
        assert body == {
            "queryType": "sessions",
            "startTime": FROM.isoformat(),
            "endTime": TO.isoformat(),
            "offset": 200,
            "maxResults": 50,
        }

    @pytest.mark.asyncio
    async def test_error_envelope_is_failure(self):
        """Test a 200 response carrying an error code is not a success."""
        client = make_client(
            lambda request: httpx.Response(
                200, json={"responseCode": 4021, "responseMessage": "Invalid session"}
            )
        )

        response = await client.query_sessions(FROM, TO)

        assert response.success is False
        assert response.invalid_session is True
        assert "4021" in response.error

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        """Test 5xx responses are retried with backoff."""
        attempts = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["count"] += 1
            if attempts["count"] < 3:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json={"responseCode": 2000, "responseBody": {}})

        client = make_client(handler, max_retries=2)
        with patch("recsync.services.mediasense_client.asyncio.sleep", new=AsyncMock()) as sleep:
            response = await client.query_sessions(FROM, TO)

        assert response.success is True
        assert attempts["count"] == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        client = make_client(lambda request: httpx.Response(500, text="down"), max_retries=1)
        with patch("recsync.services.mediasense_client.asyncio.sleep", new=AsyncMock()):
            response = await client.query_sessions(FROM, TO)

        assert response.success is False
        assert response.status_code == 500
        assert "HTTP 500" in response.error

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        """Test 4xx responses (other than 429) fail immediately."""
        attempts = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["count"] += 1
            return httpx.Response(401, text="unauthorized")

        client = make_client(handler, max_retries=3)
        response = await client.query_sessions(FROM, TO)

        assert response.success is False
        assert response.status_code == 401
        assert attempts["count"] == 1

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler, max_retries=0)
        response = await client.query_sessions(FROM, TO)

        assert response.success is False
        assert "Request error" in response.error

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>login</html>"))

        response = await client.query_sessions(FROM, TO)

        assert response.success is False
        assert "Invalid JSON" in response.error


class TestSessionQueryResponse:
    def test_invalid_session_detection(self):
        assert SessionQueryResponse(success=False, error="Invalid Session").invalid_session
        assert not SessionQueryResponse(success=False, error="HTTP 500").invalid_session
        assert not SessionQueryResponse(success=True).invalid_session
