"""Pydantic schemas for sync results and status."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from recsync.models.sync_state import SyncStatus

ALREADY_IN_PROGRESS = "Sync already in progress"


class SyncStats(BaseModel):
    """Per-run record counters."""

    fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


class SyncResult(BaseModel):
    """Outcome of one orchestrator invocation."""

    success: bool
    correlation_id: str
    duration_ms: int = 0
    stats: SyncStats
    mode: str | None = None  # 'backfill' or 'incremental'
    error: str | None = None

    @property
    def already_in_progress(self) -> bool:
        return self.error == ALREADY_IN_PROGRESS


class SyncHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: SyncStatus
    mode: str
    triggered_by: str | None = None
    correlation_id: str
    fetched: int
    created: int
    updated: int
    skipped: int
    errors: int
    duration_ms: int
    error_message: str | None = None
    started_at: datetime
    completed_at: datetime


class IndexerStats(BaseModel):
    """Failure channel of the secondary indexer."""

    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    pending: int = 0
    last_error: str | None = None


class SyncStatusOut(BaseModel):
    """Read-only projection of the feed state for the admin surface."""

    sync_type: str
    status: SyncStatus
    checkpoint: dict[str, Any] | None = None
    backfill_complete: bool
    watermark_time: datetime | None = None

    total_fetched: int = 0
    total_created: int = 0
    total_updated: int = 0
    total_errors: int = 0
    last_batch_size: int = 0
    last_duration_ms: int = 0
    error_message: str | None = None
    last_synced_at: datetime | None = None
    next_sync_at: datetime | None = None

    is_syncing: bool
    sync_enabled: bool
    history: list[SyncHistoryOut] = []
    indexer: IndexerStats | None = None
