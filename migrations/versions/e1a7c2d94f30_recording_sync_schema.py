"""Recording sync schema.

Revision ID: e1a7c2d94f30
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "e1a7c2d94f30"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

SYNC_STATUS = sa.Enum(
    "IDLE",
    "IN_PROGRESS",
    "SUCCESS",
    "PARTIAL",
    "FAILED",
    name="syncstatus",
    native_enum=False,
    length=20,
)


def upgrade() -> None:
    op.create_table(
        "agents",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("agent_id", sa.String(length=100), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("team_code", sa.String(length=100), nullable=True),
        sa.UniqueConstraint("agent_id"),
        if_not_exists=True,
    )
    op.create_index("ix_agents_full_name", "agents", ["full_name"], if_not_exists=True)

    op.create_table(
        "sync_states",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("sync_type", sa.String(length=50), nullable=False),
        sa.Column("status", SYNC_STATUS, nullable=False),
        sa.Column("checkpoint", postgresql.JSONB(), nullable=True),
        sa.Column("watermark_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_fetched", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_created", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_updated", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_errors", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_batch_size", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_duration_ms", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("sync_type"),
        if_not_exists=True,
    )

    op.create_table(
        "sync_history",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "sync_state_id",
            sa.Integer(),
            sa.ForeignKey("sync_states.id"),
            nullable=False,
        ),
        sa.Column("status", SYNC_STATUS, nullable=False),
        sa.Column("mode", sa.String(length=20), nullable=False),
        sa.Column("triggered_by", sa.String(length=50), nullable=True),
        sa.Column("correlation_id", sa.String(length=36), nullable=False),
        sa.Column("fetched", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("created", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("updated", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("skipped", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("errors", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("duration_ms", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        if_not_exists=True,
    )

    op.create_table(
        "recordings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("session_id", sa.String(length=100), nullable=False),
        sa.Column("recording_id", sa.String(length=100), nullable=True),
        sa.Column(
            "agent_id",
            sa.Integer(),
            sa.ForeignKey("agents.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("agent_name", sa.String(length=255), nullable=True),
        sa.Column("team_code", sa.String(length=100), nullable=True),
        sa.Column("team_name", sa.String(length=255), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("direction", sa.String(length=20), server_default="unknown", nullable=False),
        sa.Column("ani", sa.String(length=50), nullable=True),
        sa.Column("dnis", sa.String(length=50), nullable=True),
        sa.Column("caller_name", sa.String(length=255), nullable=True),
        sa.Column("called_name", sa.String(length=255), nullable=True),
        sa.Column("extension", sa.String(length=50), nullable=True),
        sa.Column("contact_id", sa.String(length=100), nullable=True),
        sa.Column("call_id", sa.String(length=100), nullable=True),
        sa.Column("csq", sa.String(length=255), nullable=True),
        sa.Column("queue_name", sa.String(length=255), nullable=True),
        sa.Column("skill_group", sa.String(length=255), nullable=True),
        sa.Column("wrap_up_reason", sa.String(length=255), nullable=True),
        sa.Column("wrap_up_code", sa.String(length=100), nullable=True),
        sa.Column("disposition_code", sa.String(length=100), nullable=True),
        sa.Column("transfer_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("hold_time_seconds", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("talk_time_seconds", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("ring_time_seconds", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("queue_time_seconds", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("has_audio", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("audio_codec", sa.String(length=50), nullable=True),
        sa.Column("audio_sample_rate", sa.Integer(), nullable=True),
        sa.Column("audio_bitrate", sa.Integer(), nullable=True),
        sa.Column("audio_channels", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("audio_format", sa.String(length=50), nullable=True),
        sa.Column("audio_size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("audio_url", sa.String(length=1024), nullable=True),
        sa.Column("recorder_node", sa.String(length=255), nullable=True),
        sa.Column("recorder_cluster", sa.String(length=255), nullable=True),
        sa.Column("search_text", sa.Text(), nullable=True),
        sa.Column("raw_metadata", postgresql.JSONB(), nullable=True),
        sa.Column("custom_fields", postgresql.JSONB(), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("session_id"),
        if_not_exists=True,
    )

    op.create_table(
        "recording_participants",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "recording_id",
            sa.Integer(),
            sa.ForeignKey("recordings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("participant_type", sa.String(length=50), nullable=False),
        sa.Column("participant_id", sa.String(length=100), nullable=True),
        sa.Column("participant_name", sa.String(length=255), nullable=True),
        sa.Column("phone_number", sa.String(length=50), nullable=True),
        sa.Column("device_name", sa.String(length=255), nullable=True),
        sa.Column("join_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("leave_time", sa.DateTime(timezone=True), nullable=True),
        if_not_exists=True,
    )

    op.create_table(
        "recording_tags",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "recording_id",
            sa.Integer(),
            sa.ForeignKey("recordings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tag_name", sa.String(length=100), nullable=False),
        sa.Column("tag_value", sa.Text(), nullable=True),
        sa.Column(
            "tag_source",
            sa.String(length=50),
            server_default="mediasense",
            nullable=False,
        ),
        sa.UniqueConstraint("recording_id", "tag_name", name="uq_recording_tags_name"),
        if_not_exists=True,
    )

    # Indexes - sync history
    op.create_index(
        "ix_sync_history_sync_state_id", "sync_history", ["sync_state_id"], if_not_exists=True
    )
    op.create_index(
        "ix_sync_history_correlation_id", "sync_history", ["correlation_id"], if_not_exists=True
    )

    # Indexes - recordings
    op.create_index(
        "idx_recordings_start",
        "recordings",
        [sa.text("start_time DESC"), sa.text("id DESC")],
        if_not_exists=True,
    )
    op.create_index("ix_recordings_agent_id", "recordings", ["agent_id"], if_not_exists=True)
    op.create_index("ix_recordings_team_code", "recordings", ["team_code"], if_not_exists=True)
    op.create_index("ix_recordings_ani", "recordings", ["ani"], if_not_exists=True)
    op.create_index("ix_recordings_dnis", "recordings", ["dnis"], if_not_exists=True)
    op.create_index(
        "ix_recording_participants_recording_id",
        "recording_participants",
        ["recording_id"],
        if_not_exists=True,
    )


def downgrade() -> None:
    op.drop_table("recording_tags", if_exists=True)
    op.drop_table("recording_participants", if_exists=True)
    op.drop_table("recordings", if_exists=True)
    op.drop_table("sync_history", if_exists=True)
    op.drop_table("sync_states", if_exists=True)
    op.drop_table("agents", if_exists=True)
