"""Durable SyncState row and append-only SyncHistory for one sync feed."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from recsync.config import get_settings
from recsync.models import SyncHistory, SyncState, SyncStatus
from recsync.schemas.checkpoint import (
    BackfillCheckpoint,
    IncrementalCheckpoint,
    dump_checkpoint,
    parse_checkpoint,
)
from recsync.schemas.sync import SyncStats

logger = logging.getLogger(__name__)
settings = get_settings()


class CheckpointStore:
    """
    Reads and writes the single SyncState row of a sync type.

    The row is read once at run start and written at run end (plus the
    per-day progress writes of a backfill). Callers serialize runs, so no
    row locking is done here. Every write commits.
    """

    def __init__(
        self,
        db: AsyncSession,
        sync_type: str = settings.sync_type,
        poll_interval_minutes: int = settings.sync_poll_interval_minutes,
    ):
        self.db = db
        self.sync_type = sync_type
        self.poll_interval = timedelta(minutes=poll_interval_minutes)

    async def get_state(self) -> SyncState | None:
        result = await self.db.execute(
            select(SyncState)
            .where(SyncState.sync_type == self.sync_type)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def ensure_state(self) -> SyncState:
        """Get the state row, creating it (IDLE, backfill pending) if missing."""
        state = await self.get_state()
        if state is not None:
            return state

        state = SyncState(
            sync_type=self.sync_type,
            status=SyncStatus.IDLE,
            checkpoint=dump_checkpoint(BackfillCheckpoint()),
            total_fetched=0,
            total_created=0,
            total_updated=0,
            total_errors=0,
            last_batch_size=0,
            last_duration_ms=0,
        )
        self.db.add(state)
        await self.db.commit()
        logger.info(f"Initialized sync state for {self.sync_type}")
        return state

    async def load_checkpoint(self) -> BackfillCheckpoint | IncrementalCheckpoint:
        state = await self.ensure_state()
        return parse_checkpoint(state.checkpoint)

    async def mark_in_progress(self) -> None:
        await self.ensure_state()
        await self.db.execute(
            update(SyncState)
            .where(SyncState.sync_type == self.sync_type)
            .values(status=SyncStatus.IN_PROGRESS, error_message=None)
        )
        await self.db.commit()

    def _checkpoint_values(
        self, checkpoint: BackfillCheckpoint | IncrementalCheckpoint | None
    ) -> dict:
        if checkpoint is None:
            return {}
        return {
            "checkpoint": dump_checkpoint(checkpoint),
            "watermark_time": checkpoint.last_sync_time,
        }

    def _total_values(self, totals: SyncStats) -> dict:
        return {
            "total_fetched": SyncState.total_fetched + totals.fetched,
            "total_created": SyncState.total_created + totals.created,
            "total_updated": SyncState.total_updated + totals.updated,
            "total_errors": SyncState.total_errors + totals.errors,
        }

    async def save_progress(
        self,
        checkpoint: BackfillCheckpoint | IncrementalCheckpoint,
        totals: SyncStats,
    ) -> None:
        """Persist an intermediate checkpoint without closing the run."""
        await self.db.execute(
            update(SyncState)
            .where(SyncState.sync_type == self.sync_type)
            .values(
                status=SyncStatus.IN_PROGRESS,
                **self._checkpoint_values(checkpoint),
                **self._total_values(totals),
            )
        )
        await self.db.commit()

    async def record_run(
        self,
        *,
        status: SyncStatus,
        checkpoint: BackfillCheckpoint | IncrementalCheckpoint | None,
        stats: SyncStats,
        duration_ms: int,
        correlation_id: str,
        mode: str,
        triggered_by: str,
        started_at: datetime,
        error_message: str | None = None,
        totals: SyncStats | None = None,
    ) -> None:
        """
        Close a run: update the state row and append its history row.

        A `None` checkpoint leaves the stored checkpoint untouched. `totals`
        is what still has to be added to the running counters (defaults to
        `stats`; backfills count finished days as they go).
        """
        now = datetime.now(UTC)
        state = await self.ensure_state()

        await self.db.execute(
            update(SyncState)
            .where(SyncState.id == state.id)
            .values(
                status=status,
                **self._checkpoint_values(checkpoint),
                **self._total_values(totals if totals is not None else stats),
                last_batch_size=stats.fetched,
                last_duration_ms=duration_ms,
                error_message=error_message,
                last_synced_at=now,
                next_sync_at=now + self.poll_interval,
            )
        )

        self.db.add(
            SyncHistory(
                sync_state_id=state.id,
                status=status,
                mode=mode,
                triggered_by=triggered_by,
                correlation_id=correlation_id,
                fetched=stats.fetched,
                created=stats.created,
                updated=stats.updated,
                skipped=stats.skipped,
                errors=stats.errors,
                duration_ms=duration_ms,
                error_message=error_message,
                started_at=started_at,
                completed_at=now,
            )
        )
        await self.db.commit()

    async def reset(self) -> None:
        """Restart the feed from a fresh backfill with zeroed counters."""
        await self.ensure_state()
        await self.db.execute(
            update(SyncState)
            .where(SyncState.sync_type == self.sync_type)
            .values(
                status=SyncStatus.IDLE,
                checkpoint=dump_checkpoint(BackfillCheckpoint()),
                watermark_time=None,
                total_fetched=0,
                total_created=0,
                total_updated=0,
                total_errors=0,
                last_batch_size=0,
                last_duration_ms=0,
                error_message=None,
            )
        )
        await self.db.commit()
        logger.warning(f"Sync state for {self.sync_type} reset; backfill will restart")

    async def recent_history(self, limit: int = settings.sync_history_limit) -> list[SyncHistory]:
        state = await self.get_state()
        if state is None:
            return []

        result = await self.db.execute(
            select(SyncHistory)
            .where(SyncHistory.sync_state_id == state.id)
            .order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
