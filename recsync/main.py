"""FastAPI application for the recording sync service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from recsync.config import get_settings
from recsync.database import async_session_maker, check_db_ready
from recsync.routers import health_router, sync_router
from recsync.services.checkpoint_store import CheckpointStore
from recsync.services.search_indexer import close_index_dispatcher
from recsync.tasks.scheduler import setup_scheduler, shutdown_scheduler

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()

# Rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting recording sync service...")

    # Verify database is ready
    try:
        await check_db_ready()
        logger.info("Database ready")
    except Exception as e:
        logger.error(f"Database not ready: {e}")
        raise

    # One state row per feed, created before the first run
    async with async_session_maker() as db:
        await CheckpointStore(db).ensure_state()

    if not settings.mediasense_enabled:
        logger.warning("MEDIASENSE_BASE_URL not set; scheduled sync will be skipped")
    if not settings.opensearch_enabled:
        logger.info("OPENSEARCH_URL not set; search indexing disabled")

    setup_scheduler()

    yield

    # Shutdown
    shutdown_scheduler()
    await close_index_dispatcher()
    logger.info("Recording sync service shut down")


# Create FastAPI app
app = FastAPI(
    title="Recording Sync API",
    description="MediaSense recording synchronization and search indexing",
    version="0.1.0",
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include routers
app.include_router(health_router)
app.include_router(sync_router, prefix=settings.api_v1_prefix)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Recording Sync API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "recsync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
