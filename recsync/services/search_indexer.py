"""
Secondary OpenSearch index for materialized recordings.

The primary store is the source of truth. Indexing runs as background
tasks dispatched after each primary upsert; its failures are logged and
counted on the dispatcher only, and never change the outcome of a sync run.
The index can be rebuilt from the primary store at any time.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

import httpx

from recsync.config import get_settings
from recsync.schemas.sync import IndexerStats

logger = logging.getLogger(__name__)
settings = get_settings()


class SearchIndexError(Exception):
    """Raised when a document could not be indexed."""

    pass


class OpenSearchIndexer:
    """Writes recording documents into monthly `<prefix>-YYYY.MM` indices."""

    def __init__(
        self,
        base_url: str | None = settings.opensearch_url,
        username: str | None = settings.opensearch_username,
        password: str | None = settings.opensearch_password,
        index_prefix: str = settings.opensearch_index_prefix,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not base_url:
            raise SearchIndexError("OpenSearch URL not configured")

        self.index_prefix = index_prefix
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=httpx.BasicAuth(username, password) if username and password else None,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def index_name(self, start_time: datetime | str | None) -> str:
        """Monthly index for a recording's start time."""
        if isinstance(start_time, str):
            start_time = datetime.fromisoformat(start_time)
        if start_time is None:
            return f"{self.index_prefix}-unknown"
        return f"{self.index_prefix}-{start_time.year}.{start_time.month:02d}"

    async def index_recording(self, document: dict[str, Any]) -> None:
        """Index (create or replace) one recording document by its id."""
        index = self.index_name(document.get("start_time"))
        try:
            response = await self._client.put(f"/{index}/_doc/{document['id']}", json=document)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SearchIndexError(f"Failed to index recording {document['id']}: {e}") from e

        logger.debug(f"Indexed recording {document['id']} in {index}")

    async def close(self) -> None:
        await self._client.aclose()


class IndexDispatcher:
    """
    Outbox for index writes.

    `dispatch` returns immediately; each document is indexed in its own
    task. Outcomes land in `stats`, the dispatcher's own failure channel.
    """

    def __init__(self, indexer: OpenSearchIndexer):
        self.indexer = indexer
        self._pending: set[asyncio.Task] = set()
        self._stats = IndexerStats()

    @property
    def stats(self) -> IndexerStats:
        return self._stats.model_copy(update={"pending": len(self._pending)})

    def dispatch(self, document: dict[str, Any]) -> asyncio.Task:
        self._stats.dispatched += 1
        task = asyncio.create_task(self._index(document))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _index(self, document: dict[str, Any]) -> None:
        try:
            await self.indexer.index_recording(document)
            self._stats.succeeded += 1
        except Exception as e:
            self._stats.failed += 1
            self._stats.last_error = str(e)
            logger.warning(f"Search indexing failed for recording {document.get('id')}: {e}")

    async def drain(self) -> None:
        """Wait for all dispatched index writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.indexer.close()


# ============================================================================
# GLOBAL INSTANCE
# ============================================================================

_dispatcher_instance: IndexDispatcher | None = None


def get_index_dispatcher() -> IndexDispatcher | None:
    """
    Get the global index dispatcher.

    Returns None if OpenSearch indexing is disabled.
    """
    global _dispatcher_instance

    if not settings.opensearch_enabled:
        return None

    if _dispatcher_instance is None:
        _dispatcher_instance = IndexDispatcher(OpenSearchIndexer())

    return _dispatcher_instance


async def close_index_dispatcher() -> None:
    """Drain and close the global dispatcher."""
    global _dispatcher_instance

    if _dispatcher_instance:
        await _dispatcher_instance.close()
        _dispatcher_instance = None
