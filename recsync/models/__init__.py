"""Database models."""

from recsync.models.agent import Agent
from recsync.models.recording import Recording, RecordingParticipant, RecordingTag
from recsync.models.sync_state import SyncHistory, SyncState, SyncStatus

__all__ = [
    "Agent",
    "Recording",
    "RecordingParticipant",
    "RecordingTag",
    "SyncHistory",
    "SyncState",
    "SyncStatus",
]
