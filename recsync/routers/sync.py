"""Administrative endpoints for the recording sync."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from recsync.database import get_db
from recsync.schemas.sync import SyncResult, SyncStatusOut
from recsync.services.mediasense_client import MediaSenseClient, get_mediasense_client
from recsync.services.search_indexer import IndexDispatcher, get_index_dispatcher
from recsync.services.sync import SyncOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync/recordings", tags=["sync"])


def get_orchestrator(
    db: Annotated[AsyncSession, Depends(get_db)],
    client: Annotated[MediaSenseClient | None, Depends(get_mediasense_client)],
    indexer: Annotated[IndexDispatcher | None, Depends(get_index_dispatcher)],
) -> SyncOrchestrator:
    return SyncOrchestrator(db, client, indexer=indexer)


@router.post("", response_model=SyncResult)
async def trigger_sync(
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> SyncResult:
    """
    Manually trigger a sync run.

    Runs the backfill while it is incomplete, otherwise an incremental sync.
    Returns 409 when a run is already active; the trigger is not queued.
    """
    if orchestrator.client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="MediaSense not configured",
        )

    result = await orchestrator.run_incremental_sync(triggered_by="manual")
    if result.already_in_progress:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.error)

    return result


@router.post("/reset")
async def reset_sync(
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> dict:
    """
    Reset the sync state so the next run starts a fresh backfill.

    WARNING: stored recordings are kept, but the whole retention window
    will be fetched again.
    """
    if not await orchestrator.reset_sync_state():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot reset while a sync is in progress",
        )

    logger.warning("Recording sync state reset via API")
    return {"message": "Sync state reset", "sync_type": orchestrator.sync_type}


@router.get("/status", response_model=SyncStatusOut)
async def sync_status(
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> SyncStatusOut:
    """Current sync state, recent run history and indexer counters."""
    return await orchestrator.get_sync_status()
