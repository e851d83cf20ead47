"""Pydantic schemas for canonical sessions, checkpoints and sync results."""

from recsync.schemas.checkpoint import (
    BackfillCheckpoint,
    BackfillProgress,
    IncrementalCheckpoint,
    dump_checkpoint,
    parse_checkpoint,
)
from recsync.schemas.session import CanonicalSession, MediaInfo, ParticipantData, RecorderInfo
from recsync.schemas.sync import (
    ALREADY_IN_PROGRESS,
    IndexerStats,
    SyncHistoryOut,
    SyncResult,
    SyncStats,
    SyncStatusOut,
)

__all__ = [
    "ALREADY_IN_PROGRESS",
    "BackfillCheckpoint",
    "BackfillProgress",
    "CanonicalSession",
    "IncrementalCheckpoint",
    "IndexerStats",
    "MediaInfo",
    "ParticipantData",
    "RecorderInfo",
    "SyncHistoryOut",
    "SyncResult",
    "SyncStats",
    "SyncStatusOut",
    "dump_checkpoint",
    "parse_checkpoint",
]
