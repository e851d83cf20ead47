"""MediaSense query client with retry logic and basic auth."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from recsync.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

QUERY_SESSIONS_PATH = "/ora/queryService/query/sessions"


class MediaSenseClientError(Exception):
    """Base exception for MediaSense client errors."""

    pass


@dataclass
class SessionQueryResponse:
    """One page of a session query."""

    success: bool
    data: Any = None
    error: str | None = None
    status_code: int | None = None

    @property
    def invalid_session(self) -> bool:
        """MediaSense rejected the session cookie (response code 4021)."""
        if self.success or not self.error:
            return False
        return "4021" in self.error or "invalid session" in self.error.lower()


class MediaSenseClient:
    """
    Client for the MediaSense query service.

    Features:
    - Basic auth against the ORA API
    - Exponential backoff retry on 429/5xx and transport errors
    - Failures come back as unsuccessful responses, not exceptions

    Re-authentication after an invalid session is the caller's deployment
    concern; this client only reports it.
    """

    def __init__(
        self,
        base_url: str | None = settings.mediasense_base_url,
        username: str | None = settings.mediasense_username,
        password: str | None = settings.mediasense_password,
        max_retries: int = settings.mediasense_max_retries,
        timeout: float = settings.mediasense_timeout_seconds,
        verify: bool = not settings.mediasense_allow_self_signed,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not base_url:
            raise MediaSenseClientError("MediaSense base URL not configured")

        self.base_url = base_url.rstrip("/")
        self.auth = httpx.BasicAuth(username, password) if username and password else None
        self.max_retries = max_retries
        self.timeout = timeout
        self.verify = verify
        self._transport = transport

        self.headers: dict[str, str] = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=self.auth,
            headers=self.headers,
            timeout=self.timeout,
            verify=self.verify,
            transport=self._transport,
        )

    async def _request_with_retry(
        self,
        path: str,
        body: dict[str, Any],
    ) -> SessionQueryResponse:
        """POST with exponential backoff; the last failure is returned, not raised."""
        last_error = "Max retries exceeded"
        last_status: int | None = None

        for attempt in range(self.max_retries + 1):
            try:
                async with self._client() as client:
                    response = await client.post(path, json=body)
                    response.raise_for_status()
                    payload = response.json()

                # MediaSense reports some failures inside a 200 envelope
                if isinstance(payload, dict):
                    code = payload.get("responseCode")
                    if isinstance(code, int) and code >= 4000:
                        return SessionQueryResponse(
                            success=False,
                            data=payload,
                            error=f"{code}: {payload.get('responseMessage', '')}".strip(),
                            status_code=response.status_code,
                        )

                return SessionQueryResponse(
                    success=True, data=payload, status_code=response.status_code
                )

            except httpx.HTTPStatusError as e:
                last_status = e.response.status_code
                last_error = f"HTTP {last_status}: {e.response.text[:200]}"
                retryable = last_status == 429 or last_status >= 500
                if not retryable or attempt >= self.max_retries:
                    break
                wait_time = 2**attempt
                logger.warning(f"MediaSense returned {last_status}, retry in {wait_time}s")
                await asyncio.sleep(wait_time)

            except httpx.RequestError as e:
                last_status = None
                last_error = f"Request error: {e}"
                if attempt >= self.max_retries:
                    break
                wait_time = 2**attempt
                logger.warning(f"MediaSense request error: {e}, retry in {wait_time}s")
                await asyncio.sleep(wait_time)

            except ValueError as e:
                # Body was not JSON
                return SessionQueryResponse(
                    success=False, error=f"Invalid JSON response: {e}", status_code=last_status
                )

        return SessionQueryResponse(success=False, error=last_error, status_code=last_status)

    async def query_sessions(
        self,
        from_time: datetime,
        to_time: datetime,
        offset: int = 0,
        limit: int = 100,
    ) -> SessionQueryResponse:
        """
        Query one page of recording sessions.

        Args:
            from_time: Start of the session time range
            to_time: End of the session time range
            offset: Pagination offset
            limit: Page size

        Returns:
            SessionQueryResponse with the raw response body in `data`
        """
        body = {
            "queryType": "sessions",
            "startTime": from_time.isoformat(),
            "endTime": to_time.isoformat(),
            "offset": offset,
            "maxResults": limit,
        }

        logger.debug(f"Querying sessions: {from_time} - {to_time}, offset={offset}")
        return await self._request_with_retry(QUERY_SESSIONS_PATH, body)


def get_mediasense_client() -> MediaSenseClient | None:
    """Client for the configured MediaSense server, or None when sync is disabled."""
    if not settings.mediasense_enabled:
        return None
    return MediaSenseClient()
