"""
Sync checkpoint, stored as JSON on the SyncState row.

The checkpoint is a tagged union on `mode`: a feed is either still
backfilling its retention window or running incrementally from a
watermark. `parse_checkpoint` also understands the older flat blob
(`lastSyncTime`, `lastSeenId`, `backfillComplete`, `backfillProgress`).
"""

import logging
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class BackfillProgress(BaseModel):
    """Resume position inside a fixed backfill window."""

    current_date: datetime
    start_date: datetime
    end_date: datetime

    @field_validator("current_date", "start_date", "end_date")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class BackfillCheckpoint(BaseModel):
    mode: Literal["backfill"] = "backfill"
    last_sync_time: datetime | None = None
    progress: BackfillProgress | None = None  # None until the first day batch

    @field_validator("last_sync_time")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def backfill_complete(self) -> bool:
        return False


class IncrementalCheckpoint(BaseModel):
    mode: Literal["incremental"] = "incremental"
    last_sync_time: datetime | None = None
    last_seen_id: str | None = None

    @field_validator("last_sync_time")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def backfill_complete(self) -> bool:
        return True


Checkpoint = Annotated[
    BackfillCheckpoint | IncrementalCheckpoint, Field(discriminator="mode")
]

_checkpoint_adapter: TypeAdapter[BackfillCheckpoint | IncrementalCheckpoint] = TypeAdapter(
    Checkpoint
)


def _from_legacy(value: dict[str, Any]) -> dict[str, Any]:
    """Translate the flat camelCase blob into the tagged shape."""
    last_sync_time = value.get("lastSyncTime") or None
    if value.get("backfillComplete"):
        return {
            "mode": "incremental",
            "last_sync_time": last_sync_time,
            "last_seen_id": value.get("lastSeenId"),
        }

    progress = value.get("backfillProgress")
    return {
        "mode": "backfill",
        "last_sync_time": last_sync_time,
        "progress": {
            "current_date": progress.get("currentDate"),
            "start_date": progress.get("startDate"),
            "end_date": progress.get("endDate"),
        }
        if isinstance(progress, dict)
        else None,
    }


def parse_checkpoint(value: Any) -> BackfillCheckpoint | IncrementalCheckpoint:
    """
    Parse a stored checkpoint.

    Empty or unreadable values mean the backfill has not started yet.
    """
    if not value or not isinstance(value, dict):
        return BackfillCheckpoint()

    if "mode" not in value:
        value = _from_legacy(value)

    try:
        return _checkpoint_adapter.validate_python(value)
    except ValidationError as e:
        logger.warning(f"Unreadable checkpoint, restarting backfill: {e}")
        return BackfillCheckpoint()


def dump_checkpoint(checkpoint: BackfillCheckpoint | IncrementalCheckpoint) -> dict[str, Any]:
    """Serialize a checkpoint for the JSON column."""
    return checkpoint.model_dump(mode="json")
