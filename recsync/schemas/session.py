"""Canonical session shape produced by the normalizer."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ParticipantData(BaseModel):
    """One party on a recorded session."""

    type: str = "unknown"
    id: str | None = None
    name: str | None = None
    phone_number: str | None = None
    device_name: str | None = None
    join_time: datetime | None = None
    leave_time: datetime | None = None


class MediaInfo(BaseModel):
    """Media descriptor of the first audio track."""

    has_audio: bool = False
    codec: str | None = None
    sample_rate: int | None = None
    bitrate: int | None = None
    channels: int = 1
    format: str | None = None
    size: int | None = None
    url: str | None = None


class RecorderInfo(BaseModel):
    node: str | None = None
    cluster: str | None = None


class CanonicalSession(BaseModel):
    """
    Upstream-shape-independent session record.

    `raw` keeps the original payload verbatim for forensic replay.
    """

    session_id: str
    recording_id: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    duration_seconds: int = 0

    direction: str = "unknown"
    ani: str | None = None
    dnis: str | None = None
    caller_name: str | None = None
    called_name: str | None = None
    extension: str | None = None
    contact_id: str | None = None
    call_id: str | None = None

    agent_id: str | None = None
    agent_name: str | None = None
    team_id: str | None = None
    team_name: str | None = None

    csq: str | None = None
    queue_name: str | None = None
    skill_group: str | None = None
    wrap_up_reason: str | None = None
    wrap_up_code: str | None = None
    disposition_code: str | None = None

    transfer_count: int = 0
    hold_time: int = 0
    talk_time: int = 0
    ring_time: int = 0
    queue_time: int = 0

    participants: list[ParticipantData] = Field(default_factory=list)
    media: MediaInfo = Field(default_factory=MediaInfo)
    recorder: RecorderInfo = Field(default_factory=RecorderInfo)
    tags: dict[str, str] = Field(default_factory=dict)
    custom_fields: dict[str, Any] = Field(default_factory=dict)
    raw: Any = None
