"""API routers."""

from recsync.routers.health import router as health_router
from recsync.routers.sync import router as sync_router

__all__ = ["health_router", "sync_router"]
