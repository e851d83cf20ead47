"""Recording model and its owned participants/tags (MediaSense sessions)."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recsync.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Recording(Base):
    """
    A call recording session materialized from MediaSense.

    Keyed by the upstream session id; re-synced while the session's end
    time is still advancing upstream.
    """

    __tablename__ = "recordings"

    id: Mapped[int] = mapped_column(primary_key=True)
    session_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    recording_id: Mapped[str | None] = mapped_column(String(100))

    # Agent / team linkage
    agent_id: Mapped[int | None] = mapped_column(
        ForeignKey("agents.id", ondelete="SET NULL"), index=True
    )
    agent_name: Mapped[str | None] = mapped_column(String(255))
    team_code: Mapped[str | None] = mapped_column(String(100), index=True)
    team_name: Mapped[str | None] = mapped_column(String(255))

    # Timing
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Call metadata
    direction: Mapped[str] = mapped_column(String(20), default="unknown", nullable=False)
    ani: Mapped[str | None] = mapped_column(String(50), index=True)  # Calling number
    dnis: Mapped[str | None] = mapped_column(String(50), index=True)  # Called number
    caller_name: Mapped[str | None] = mapped_column(String(255))
    called_name: Mapped[str | None] = mapped_column(String(255))
    extension: Mapped[str | None] = mapped_column(String(50))
    contact_id: Mapped[str | None] = mapped_column(String(100))
    call_id: Mapped[str | None] = mapped_column(String(100))

    # Queue / skill
    csq: Mapped[str | None] = mapped_column(String(255))
    queue_name: Mapped[str | None] = mapped_column(String(255))
    skill_group: Mapped[str | None] = mapped_column(String(255))

    # Wrap-up / disposition
    wrap_up_reason: Mapped[str | None] = mapped_column(String(255))
    wrap_up_code: Mapped[str | None] = mapped_column(String(100))
    disposition_code: Mapped[str | None] = mapped_column(String(100))

    # Handling counters
    transfer_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    hold_time_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    talk_time_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ring_time_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    queue_time_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Media descriptor
    has_audio: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    audio_codec: Mapped[str | None] = mapped_column(String(50))
    audio_sample_rate: Mapped[int | None] = mapped_column(Integer)
    audio_bitrate: Mapped[int | None] = mapped_column(Integer)
    audio_channels: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    audio_format: Mapped[str | None] = mapped_column(String(50))
    audio_size_bytes: Mapped[int | None] = mapped_column(BigInteger)
    audio_url: Mapped[str | None] = mapped_column(String(1024))

    recorder_node: Mapped[str | None] = mapped_column(String(255))
    recorder_cluster: Mapped[str | None] = mapped_column(String(255))

    # Search / forensic
    search_text: Mapped[str | None] = mapped_column(Text)
    raw_metadata: Mapped[Any | None] = mapped_column(JSONType)
    custom_fields: Mapped[dict | None] = mapped_column(JSONType)

    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    participants: Mapped[list["RecordingParticipant"]] = relationship(
        back_populates="recording",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    tags: Mapped[list["RecordingTag"]] = relationship(
        back_populates="recording",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_recordings_start", start_time.desc(), id.desc()),
    )

    def __repr__(self) -> str:
        return f"<Recording {self.session_id}: {self.direction}>"


class RecordingParticipant(Base):
    """A call leg / party of a recording. Replaced wholesale on every re-sync."""

    __tablename__ = "recording_participants"

    id: Mapped[int] = mapped_column(primary_key=True)
    recording_id: Mapped[int] = mapped_column(
        ForeignKey("recordings.id", ondelete="CASCADE"), index=True, nullable=False
    )
    participant_type: Mapped[str] = mapped_column(String(50), nullable=False)
    participant_id: Mapped[str | None] = mapped_column(String(100))
    participant_name: Mapped[str | None] = mapped_column(String(255))
    phone_number: Mapped[str | None] = mapped_column(String(50))
    device_name: Mapped[str | None] = mapped_column(String(255))
    join_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    leave_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    recording: Mapped[Recording] = relationship(back_populates="participants")


class RecordingTag(Base):
    """Key/value tag on a recording, unique per (recording, tag name)."""

    __tablename__ = "recording_tags"

    id: Mapped[int] = mapped_column(primary_key=True)
    recording_id: Mapped[int] = mapped_column(
        ForeignKey("recordings.id", ondelete="CASCADE"), nullable=False
    )
    tag_name: Mapped[str] = mapped_column(String(100), nullable=False)
    tag_value: Mapped[str | None] = mapped_column(Text)
    tag_source: Mapped[str] = mapped_column(String(50), default="mediasense", nullable=False)

    recording: Mapped[Recording] = relationship(back_populates="tags")

    __table_args__ = (
        UniqueConstraint("recording_id", "tag_name", name="uq_recording_tags_name"),
    )
