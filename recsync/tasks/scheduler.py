"""Background task scheduler for recording sync."""

import logging
from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from recsync.config import get_settings
from recsync.database import async_session_maker
from recsync.services.mediasense_client import get_mediasense_client
from recsync.services.search_indexer import get_index_dispatcher
from recsync.services.sync import SyncOrchestrator

logger = logging.getLogger(__name__)
settings = get_settings()

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


async def sync_recordings_job() -> None:
    """Background job to pull new and maturing recordings from MediaSense."""
    client = get_mediasense_client()
    if client is None:
        logger.info("MediaSense not configured, skipping scheduled sync")
        return

    logger.info("Starting scheduled recording sync")
    try:
        async with async_session_maker() as db:
            orchestrator = SyncOrchestrator(db, client, indexer=get_index_dispatcher())
            result = await orchestrator.run_incremental_sync(triggered_by="scheduler")

            if result.success:
                logger.info(
                    f"[{result.correlation_id}] Recording sync complete ({result.mode}): "
                    f"{result.stats.fetched} fetched, {result.stats.created} created, "
                    f"{result.stats.updated} updated"
                )
            elif not result.already_in_progress:
                logger.error(f"[{result.correlation_id}] Recording sync failed: {result.error}")
    except Exception as e:
        logger.error(f"Recording sync failed: {e}", exc_info=True)


def setup_scheduler() -> AsyncIOScheduler:
    """Set up and start the background task scheduler."""
    global scheduler

    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        sync_recordings_job,
        trigger=IntervalTrigger(minutes=settings.sync_poll_interval_minutes),
        next_run_time=datetime.now(UTC),
        id="sync_recordings",
        name="Sync recordings from MediaSense",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.start()
    logger.info("Scheduler started")

    return scheduler


def shutdown_scheduler() -> None:
    """Shut down the scheduler gracefully."""
    global scheduler

    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")
        scheduler = None
