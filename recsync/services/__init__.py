"""Services for recording sync and indexing."""

from recsync.services.checkpoint_store import CheckpointStore
from recsync.services.mediasense_client import MediaSenseClient, get_mediasense_client
from recsync.services.normalizer import normalize_batch, normalize_session
from recsync.services.search_indexer import IndexDispatcher, get_index_dispatcher
from recsync.services.sync import SyncOrchestrator, sync_guard
from recsync.services.upsert import RecordingUpserter

__all__ = [
    "CheckpointStore",
    "IndexDispatcher",
    "MediaSenseClient",
    "RecordingUpserter",
    "SyncOrchestrator",
    "get_index_dispatcher",
    "get_mediasense_client",
    "normalize_batch",
    "normalize_session",
    "sync_guard",
]
