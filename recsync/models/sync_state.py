"""SyncState / SyncHistory models tracking the recording feed."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from recsync.database import Base


class SyncStatus(str, enum.Enum):
    IDLE = "IDLE"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class SyncState(Base):
    """
    Durable position of one sync feed.

    Exactly one row per sync type. Rows are updated in place and never
    deleted; the checkpoint column holds the serialized checkpoint.
    """

    __tablename__ = "sync_states"

    id: Mapped[int] = mapped_column(primary_key=True)
    sync_type: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    status: Mapped[SyncStatus] = mapped_column(
        Enum(SyncStatus, native_enum=False, length=20),
        default=SyncStatus.IDLE,
        nullable=False,
    )
    checkpoint: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql")
    )
    watermark_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Running totals
    total_fetched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_errors: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_batch_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<SyncState {self.sync_type}: {self.status.value}>"


class SyncHistory(Base):
    """One row per sync run attempt. Written once by the engine."""

    __tablename__ = "sync_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    sync_state_id: Mapped[int] = mapped_column(
        ForeignKey("sync_states.id"), index=True, nullable=False
    )
    status: Mapped[SyncStatus] = mapped_column(
        Enum(SyncStatus, native_enum=False, length=20), nullable=False
    )
    mode: Mapped[str] = mapped_column(String(20), nullable=False)  # backfill / incremental
    triggered_by: Mapped[str | None] = mapped_column(String(50))
    correlation_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)

    fetched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    errors: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<SyncHistory {self.correlation_id}: {self.status.value}>"
