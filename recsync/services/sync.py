"""
Recording sync orchestrator.

Pulls MediaSense sessions page by page, normalizes them, upserts them into
the primary store and hands index documents to the secondary indexer.

Key features:
- Incremental sync from an end-time watermark, re-fetching an overlap
  window to catch sessions that were still maturing
- Resumable backfill of the retention window, one day batch at a time
- Single-flight: one run per sync type; extra triggers are rejected
- Every accepted run ends in a SyncResult and a SyncHistory row, never an exception
"""

import asyncio
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from recsync.config import Settings, get_settings
from recsync.models import SyncStatus
from recsync.schemas.checkpoint import (
    BackfillCheckpoint,
    BackfillProgress,
    IncrementalCheckpoint,
    parse_checkpoint,
)
from recsync.schemas.session import CanonicalSession
from recsync.schemas.sync import (
    ALREADY_IN_PROGRESS,
    SyncHistoryOut,
    SyncResult,
    SyncStats,
    SyncStatusOut,
)
from recsync.services.checkpoint_store import CheckpointStore
from recsync.services.mediasense_client import MediaSenseClient
from recsync.services.normalizer import NormalizedBatch, normalize_batch
from recsync.services.search_indexer import IndexDispatcher
from recsync.services.upsert import RecordingUpserter, UpsertResult

logger = logging.getLogger(__name__)
settings = get_settings()

MODE_BACKFILL = "backfill"
MODE_INCREMENTAL = "incremental"


class SyncFetchError(Exception):
    """A page could not be fetched from MediaSense; aborts the run."""

    pass


class SingleFlight:
    """
    Non-blocking per-key try-lock.

    Check-and-set happens without an await in between, so it is atomic
    on the event loop. A busy key is rejected, never queued.
    """

    def __init__(self):
        self._busy: set[str] = set()

    def is_busy(self, key: str) -> bool:
        return key in self._busy

    @contextmanager
    def try_acquire(self, key: str) -> Iterator[bool]:
        if key in self._busy:
            yield False
            return

        self._busy.add(key)
        try:
            yield True
        finally:
            self._busy.discard(key)


# Shared by the scheduler and the admin API
sync_guard = SingleFlight()


@dataclass
class WindowWatermark:
    """Highest end time among sessions processed in a fetch window."""

    end_time: datetime | None = None
    session_id: str | None = None

    def observe(self, session: CanonicalSession) -> None:
        if session.end_time and (self.end_time is None or session.end_time > self.end_time):
            self.end_time = session.end_time
            self.session_id = session.session_id


def new_correlation_id() -> str:
    return str(uuid4())[:8]


def _add_stats(total: SyncStats, delta: SyncStats) -> None:
    total.fetched += delta.fetched
    total.created += delta.created
    total.updated += delta.updated
    total.skipped += delta.skipped
    total.errors += delta.errors


def _sub_stats(a: SyncStats, b: SyncStats) -> SyncStats:
    return SyncStats(
        fetched=a.fetched - b.fetched,
        created=a.created - b.created,
        updated=a.updated - b.updated,
        skipped=a.skipped - b.skipped,
        errors=a.errors - b.errors,
    )


class SyncOrchestrator:
    """
    Drives fetch -> normalize -> upsert -> index for the recording feed.

    One instance per database session; the single-flight guard is shared
    process-wide so scheduler and manual triggers exclude each other.
    """

    def __init__(
        self,
        db: AsyncSession,
        client: MediaSenseClient | None,
        indexer: IndexDispatcher | None = None,
        guard: SingleFlight | None = None,
        config: Settings | None = None,
    ):
        self.db = db
        self.client = client
        self.indexer = indexer
        self.guard = guard or sync_guard
        self.config = config or settings
        self.store = CheckpointStore(
            db,
            sync_type=self.config.sync_type,
            poll_interval_minutes=self.config.sync_poll_interval_minutes,
        )
        self.upserter = RecordingUpserter(db)

    @property
    def sync_type(self) -> str:
        return self.config.sync_type

    @property
    def is_syncing(self) -> bool:
        return self.guard.is_busy(self.sync_type)

    def _rejected(self, correlation_id: str) -> SyncResult:
        logger.warning(f"[{correlation_id}] Sync already in progress, skipping")
        return SyncResult(
            success=False,
            correlation_id=correlation_id,
            duration_ms=0,
            stats=SyncStats(),
            error=ALREADY_IN_PROGRESS,
        )

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def run_incremental_sync(self, triggered_by: str = "manual") -> SyncResult:
        """
        Default scheduled/manual entry point.

        Runs the backfill instead while the checkpoint says it is not
        complete.
        """
        correlation_id = new_correlation_id()

        with self.guard.try_acquire(self.sync_type) as acquired:
            if not acquired:
                return self._rejected(correlation_id)

            logger.info(f"[{correlation_id}] Sync triggered by {triggered_by}")
            try:
                checkpoint = await self.store.load_checkpoint()
            except Exception as e:
                logger.error(f"[{correlation_id}] Could not load sync state: {e}", exc_info=True)
                return SyncResult(
                    success=False,
                    correlation_id=correlation_id,
                    stats=SyncStats(),
                    error=f"Could not load sync state: {e}",
                )

            if isinstance(checkpoint, BackfillCheckpoint):
                return await self._backfill(correlation_id, triggered_by, checkpoint)
            return await self._incremental(correlation_id, triggered_by, checkpoint)

    async def run_backfill(
        self,
        correlation_id: str,
        triggered_by: str,
        checkpoint: BackfillCheckpoint | IncrementalCheckpoint,
    ) -> SyncResult:
        """
        Advance the backfill by up to `backfill_max_batches_per_run` days.

        Given an incremental checkpoint, a new backfill window is started.
        """
        with self.guard.try_acquire(self.sync_type) as acquired:
            if not acquired:
                return self._rejected(correlation_id)
            return await self._backfill(correlation_id, triggered_by, checkpoint)

    async def reset_sync_state(self) -> bool:
        """
        Reinitialize the feed to "backfill not complete" with zeroed counters.

        Returns False (and changes nothing) while a run is active.
        """
        with self.guard.try_acquire(self.sync_type) as acquired:
            if not acquired:
                logger.warning("Refusing to reset sync state while a sync is running")
                return False
            await self.store.reset()
            return True

    async def get_sync_status(self) -> SyncStatusOut:
        state = await self.store.ensure_state()
        history = await self.store.recent_history(self.config.sync_history_limit)
        checkpoint = parse_checkpoint(state.checkpoint)

        return SyncStatusOut(
            sync_type=state.sync_type,
            status=state.status,
            checkpoint=state.checkpoint,
            backfill_complete=checkpoint.backfill_complete,
            watermark_time=state.watermark_time,
            total_fetched=state.total_fetched,
            total_created=state.total_created,
            total_updated=state.total_updated,
            total_errors=state.total_errors,
            last_batch_size=state.last_batch_size,
            last_duration_ms=state.last_duration_ms,
            error_message=state.error_message,
            last_synced_at=state.last_synced_at,
            next_sync_at=state.next_sync_at,
            is_syncing=self.is_syncing,
            sync_enabled=self.client is not None,
            history=[SyncHistoryOut.model_validate(h) for h in history],
            indexer=self.indexer.stats if self.indexer else None,
        )

    # ------------------------------------------------------------------
    # Incremental mode
    # ------------------------------------------------------------------

    def incremental_from_time(
        self, last_sync_time: datetime | None, now: datetime, correlation_id: str = "-"
    ) -> datetime:
        """Start of the incremental fetch window."""
        lookback_floor = now - timedelta(hours=self.config.sync_default_lookback_hours)

        if last_sync_time is None:
            return lookback_floor

        if last_sync_time > now:
            logger.warning(
                f"[{correlation_id}] Watermark {last_sync_time.isoformat()} is in the future, "
                f"falling back to {self.config.sync_future_fallback_days} days"
            )
            return now - timedelta(days=self.config.sync_future_fallback_days)

        overlap = timedelta(minutes=self.config.sync_overlap_minutes)
        return max(last_sync_time - overlap, lookback_floor)

    async def _incremental(
        self,
        correlation_id: str,
        triggered_by: str,
        checkpoint: IncrementalCheckpoint,
    ) -> SyncResult:
        started_at = datetime.now(UTC)
        start = time.monotonic()
        stats = SyncStats()

        try:
            logger.info(f"[{correlation_id}] Starting incremental sync")
            await self.store.mark_in_progress()

            now = datetime.now(UTC)
            from_time = self.incremental_from_time(checkpoint.last_sync_time, now, correlation_id)
            watermark = await self._sync_window(
                from_time,
                now,
                correlation_id,
                stats,
                max_pages=self.config.sync_max_pages_per_run,
            )

            # Never move the watermark backwards
            new_sync_time = checkpoint.last_sync_time
            new_seen_id = checkpoint.last_seen_id
            if watermark.end_time and (new_sync_time is None or watermark.end_time > new_sync_time):
                new_sync_time = watermark.end_time
                new_seen_id = watermark.session_id

            new_checkpoint = IncrementalCheckpoint(
                last_sync_time=new_sync_time or now,
                last_seen_id=new_seen_id,
            )
            status = SyncStatus.PARTIAL if stats.errors else SyncStatus.SUCCESS
            duration_ms = int((time.monotonic() - start) * 1000)

            await self.store.record_run(
                status=status,
                checkpoint=new_checkpoint,
                stats=stats,
                duration_ms=duration_ms,
                correlation_id=correlation_id,
                mode=MODE_INCREMENTAL,
                triggered_by=triggered_by,
                started_at=started_at,
            )

            logger.info(
                f"[{correlation_id}] Incremental sync completed in {duration_ms}ms: "
                f"{stats.model_dump()}"
            )
            return SyncResult(
                success=True,
                correlation_id=correlation_id,
                duration_ms=duration_ms,
                stats=stats,
                mode=MODE_INCREMENTAL,
            )

        except Exception as e:
            return await self._fail(
                correlation_id, triggered_by, MODE_INCREMENTAL, started_at, start, stats, stats, e
            )

    # ------------------------------------------------------------------
    # Backfill mode
    # ------------------------------------------------------------------

    async def _backfill(
        self,
        correlation_id: str,
        triggered_by: str,
        checkpoint: BackfillCheckpoint | IncrementalCheckpoint,
    ) -> SyncResult:
        started_at = datetime.now(UTC)
        start = time.monotonic()
        stats = SyncStats()
        counted = SyncStats()  # already added to the running totals by day writes

        try:
            logger.info(f"[{correlation_id}] Starting backfill")
            await self.store.mark_in_progress()

            progress = checkpoint.progress if isinstance(checkpoint, BackfillCheckpoint) else None
            if progress is None:
                end_date = datetime.now(UTC)
                start_date = end_date - timedelta(days=self.config.backfill_retention_days)
                progress = BackfillProgress(
                    current_date=start_date, start_date=start_date, end_date=end_date
                )
                logger.info(
                    f"[{correlation_id}] New backfill window "
                    f"{start_date.isoformat()} - {end_date.isoformat()}"
                )
            else:
                logger.info(
                    f"[{correlation_id}] Resuming backfill at {progress.current_date.isoformat()}"
                )

            batch_span = timedelta(days=self.config.backfill_batch_days)
            current_date = progress.current_date
            batches = 0

            while (
                current_date < progress.end_date
                and batches < self.config.backfill_max_batches_per_run
            ):
                batch_end = min(current_date + batch_span, progress.end_date)
                logger.info(
                    f"[{correlation_id}] Backfill batch: "
                    f"{current_date.isoformat()} to {batch_end.isoformat()}"
                )

                day_stats = SyncStats()
                try:
                    await self._sync_window(current_date, batch_end, correlation_id, day_stats)
                finally:
                    # Pages committed before a failure still count for this run
                    _add_stats(stats, day_stats)

                current_date = batch_end
                batches += 1
                progress = progress.model_copy(update={"current_date": current_date})

                # Persist after every batch so a crash repeats at most one
                await self.store.save_progress(
                    BackfillCheckpoint(last_sync_time=current_date, progress=progress),
                    totals=day_stats,
                )
                _add_stats(counted, day_stats)

            complete = current_date >= progress.end_date
            if complete:
                final_checkpoint: BackfillCheckpoint | IncrementalCheckpoint = (
                    IncrementalCheckpoint(last_sync_time=progress.end_date)
                )
            else:
                final_checkpoint = BackfillCheckpoint(last_sync_time=current_date, progress=progress)

            if complete and not stats.errors:
                status = SyncStatus.SUCCESS
            else:
                status = SyncStatus.PARTIAL
            duration_ms = int((time.monotonic() - start) * 1000)

            await self.store.record_run(
                status=status,
                checkpoint=final_checkpoint,
                stats=stats,
                duration_ms=duration_ms,
                correlation_id=correlation_id,
                mode=MODE_BACKFILL,
                triggered_by=triggered_by,
                started_at=started_at,
                totals=_sub_stats(stats, counted),
            )

            logger.info(
                f"[{correlation_id}] Backfill {'completed' if complete else 'progress saved'} "
                f"in {duration_ms}ms after {batches} batches: {stats.model_dump()}"
            )
            return SyncResult(
                success=True,
                correlation_id=correlation_id,
                duration_ms=duration_ms,
                stats=stats,
                mode=MODE_BACKFILL,
            )

        except Exception as e:
            return await self._fail(
                correlation_id,
                triggered_by,
                MODE_BACKFILL,
                started_at,
                start,
                stats,
                _sub_stats(stats, counted),
                e,
            )

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _fail(
        self,
        correlation_id: str,
        triggered_by: str,
        mode: str,
        started_at: datetime,
        start: float,
        stats: SyncStats,
        totals: SyncStats,
        error: Exception,
    ) -> SyncResult:
        """Record a FAILED run, leaving the stored checkpoint where it was."""
        duration_ms = int((time.monotonic() - start) * 1000)
        error_message = str(error) or error.__class__.__name__

        if isinstance(error, SyncFetchError):
            logger.error(f"[{correlation_id}] {mode.capitalize()} sync aborted: {error_message}")
        else:
            logger.error(
                f"[{correlation_id}] {mode.capitalize()} sync failed: {error_message}",
                exc_info=True,
            )

        try:
            await self.db.rollback()
            await self.store.record_run(
                status=SyncStatus.FAILED,
                checkpoint=None,
                stats=stats,
                duration_ms=duration_ms,
                correlation_id=correlation_id,
                mode=mode,
                triggered_by=triggered_by,
                started_at=started_at,
                error_message=error_message,
                totals=totals,
            )
        except Exception as e:
            logger.error(f"[{correlation_id}] Could not record failed run: {e}", exc_info=True)

        return SyncResult(
            success=False,
            correlation_id=correlation_id,
            duration_ms=duration_ms,
            stats=stats,
            mode=mode,
            error=error_message,
        )

    async def _fetch_page(
        self,
        from_time: datetime,
        to_time: datetime,
        offset: int,
        correlation_id: str,
    ) -> NormalizedBatch:
        if self.client is None:
            raise SyncFetchError("MediaSense not configured")

        logger.debug(
            f"[{correlation_id}] Fetching sessions {from_time.isoformat()} - "
            f"{to_time.isoformat()} offset={offset}"
        )
        response = await self.client.query_sessions(
            from_time, to_time, offset=offset, limit=self.config.sync_page_size
        )

        if not response.success:
            if response.invalid_session:
                logger.error(
                    f"[{correlation_id}] MediaSense rejected the session (4021); "
                    "the client must re-authenticate before the next run"
                )
            raise SyncFetchError(
                f"Session query failed at offset {offset}: {response.error or 'unknown error'}"
            )

        return normalize_batch(response.data, correlation_id)

    async def _sync_window(
        self,
        from_time: datetime,
        to_time: datetime,
        correlation_id: str,
        stats: SyncStats,
        max_pages: int | None = None,
    ) -> WindowWatermark:
        """
        Page through [from_time, to_time] in upstream order.

        Stops on a short or empty page, or after `max_pages` pages.
        """
        watermark = WindowWatermark()
        page_size = self.config.sync_page_size
        page = 0

        while max_pages is None or page < max_pages:
            batch = await self._fetch_page(from_time, to_time, page * page_size, correlation_id)
            page += 1

            if batch.received == 0:
                break

            stats.fetched += batch.received
            stats.skipped += batch.dropped

            for session in batch.sessions:
                result = await self._process_session(session, correlation_id)
                if result is None:
                    stats.errors += 1
                    continue

                if result == "created":
                    stats.created += 1
                elif result == "updated":
                    stats.updated += 1
                else:
                    stats.skipped += 1
                watermark.observe(session)

            if batch.received < page_size:
                break

            if max_pages is not None and page >= max_pages:
                logger.warning(
                    f"[{correlation_id}] Reached page cap ({max_pages}); "
                    "continuing next run"
                )
                break

            # Rate limiting courtesy to MediaSense
            await asyncio.sleep(self.config.sync_page_delay_ms / 1000)

        return watermark

    async def _process_session(
        self, session: CanonicalSession, correlation_id: str
    ) -> UpsertResult | None:
        """Upsert and commit one session; None means it failed and was rolled back."""
        try:
            outcome = await self.upserter.upsert(session)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"[{correlation_id}] Failed to process session {session.session_id}: {e}"
            )
            return None

        if outcome.document is not None and self.indexer is not None:
            self.indexer.dispatch(outcome.document)

        return outcome.result
