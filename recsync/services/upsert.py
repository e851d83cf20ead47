"""Idempotent materialization of canonical sessions into the primary store."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from sqlalchemy import delete, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recsync.models import Agent, Recording, RecordingParticipant, RecordingTag
from recsync.schemas.session import CanonicalSession, ParticipantData
from recsync.services.normalizer import build_search_text

logger = logging.getLogger(__name__)

UpsertResult = Literal["created", "updated", "skipped"]


@dataclass
class UpsertOutcome:
    """Result of one upsert plus the index document for created/updated rows."""

    result: UpsertResult
    recording_id: int | None = None
    document: dict[str, Any] | None = None


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def needs_resync(stored_end: datetime | None, fetched_end: datetime | None) -> bool:
    """
    Maturity rule: re-sync while the stored end time is unknown or the
    upstream end time has moved past it.
    """
    if stored_end is None:
        return True
    if fetched_end is None:
        return False
    return _as_utc(fetched_end) > _as_utc(stored_end)


class RecordingUpserter:
    """
    Writes one canonical session as a Recording with its participants and tags.

    Outcomes:
    - created: natural key not stored yet
    - updated: stored row still maturing (see `needs_resync`)
    - skipped: stored row already as complete as the fetched one

    Nothing is written on skip. The caller owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _dialect_insert(self, model):
        """INSERT supporting ON CONFLICT for the session's dialect."""
        if self.db.get_bind().dialect.name == "postgresql":
            return postgresql.insert(model)
        return sqlite.insert(model)

    async def resolve_agent(self, agent_id: str | None, agent_name: str | None) -> int | None:
        """
        Best-effort match against the local roster.

        Exact telephony id first, then a case-insensitive name match.
        Lookup failures resolve to None rather than failing the upsert.
        """
        if not agent_id and not agent_name:
            return None

        try:
            if agent_id:
                result = await self.db.execute(
                    select(Agent.id).where(Agent.agent_id == agent_id).limit(1)
                )
                found = result.scalar_one_or_none()
                if found is not None:
                    return found

            for needle in (agent_name, agent_id):
                if not needle:
                    continue
                result = await self.db.execute(
                    select(Agent.id)
                    .where(Agent.full_name.icontains(needle, autoescape=True))
                    .order_by(Agent.id)
                    .limit(1)
                )
                found = result.scalar_one_or_none()
                if found is not None:
                    return found
        except SQLAlchemyError as e:
            logger.warning(f"Agent lookup failed for {agent_id or agent_name}: {e}")

        return None

    def _recording_values(self, session: CanonicalSession, agent_pk: int | None) -> dict[str, Any]:
        media = session.media
        return {
            "session_id": session.session_id,
            "recording_id": session.recording_id,
            "agent_id": agent_pk,
            "agent_name": session.agent_name,
            "team_code": session.team_id,
            "team_name": session.team_name,
            "start_time": session.start_time,
            "end_time": session.end_time,
            "duration_seconds": session.duration_seconds,
            "direction": session.direction,
            "ani": session.ani,
            "dnis": session.dnis,
            "caller_name": session.caller_name,
            "called_name": session.called_name,
            "extension": session.extension,
            "contact_id": session.contact_id,
            "call_id": session.call_id,
            "csq": session.csq,
            "queue_name": session.queue_name,
            "skill_group": session.skill_group,
            "wrap_up_reason": session.wrap_up_reason,
            "wrap_up_code": session.wrap_up_code,
            "disposition_code": session.disposition_code,
            "transfer_count": session.transfer_count,
            "hold_time_seconds": session.hold_time,
            "talk_time_seconds": session.talk_time,
            "ring_time_seconds": session.ring_time,
            "queue_time_seconds": session.queue_time,
            "has_audio": media.has_audio,
            "audio_codec": media.codec,
            "audio_sample_rate": media.sample_rate,
            "audio_bitrate": media.bitrate,
            "audio_channels": media.channels,
            "audio_format": media.format,
            "audio_size_bytes": media.size,
            "audio_url": media.url,
            "recorder_node": session.recorder.node,
            "recorder_cluster": session.recorder.cluster,
            "search_text": build_search_text(session),
            "raw_metadata": session.raw,
            "custom_fields": session.custom_fields,
            "synced_at": datetime.now(UTC),
        }

    async def upsert(self, session: CanonicalSession) -> UpsertOutcome:
        result = await self.db.execute(
            select(Recording.id, Recording.end_time).where(
                Recording.session_id == session.session_id
            )
        )
        existing = result.first()

        if existing is not None and not needs_resync(existing.end_time, session.end_time):
            return UpsertOutcome(result="skipped", recording_id=existing.id)

        agent_pk = await self.resolve_agent(session.agent_id, session.agent_name)
        values = self._recording_values(session, agent_pk)

        outcome: UpsertResult
        if existing is None:
            inserted = await self.db.execute(
                insert(Recording).values(**values).returning(Recording.id)
            )
            recording_id = inserted.scalar_one()
            outcome = "created"
        else:
            recording_id = existing.id
            await self.db.execute(
                update(Recording)
                .where(Recording.id == recording_id)
                .values(**{k: v for k, v in values.items() if k != "session_id"})
            )
            outcome = "updated"

        await self._replace_participants(recording_id, session.participants)
        await self._upsert_tags(recording_id, session.tags)

        return UpsertOutcome(
            result=outcome,
            recording_id=recording_id,
            document=build_index_document(recording_id, values, session),
        )

    async def _replace_participants(
        self, recording_id: int, participants: list[ParticipantData]
    ) -> None:
        # Upstream sends no participant diffs; always replace the full set
        await self.db.execute(
            delete(RecordingParticipant).where(RecordingParticipant.recording_id == recording_id)
        )
        if not participants:
            return

        await self.db.execute(
            insert(RecordingParticipant),
            [
                {
                    "recording_id": recording_id,
                    "participant_type": p.type,
                    "participant_id": p.id,
                    "participant_name": p.name,
                    "phone_number": p.phone_number,
                    "device_name": p.device_name,
                    "join_time": p.join_time,
                    "leave_time": p.leave_time,
                }
                for p in participants
            ],
        )

    async def _upsert_tags(self, recording_id: int, tags: dict[str, str]) -> None:
        for tag_name, tag_value in tags.items():
            stmt = (
                self._dialect_insert(RecordingTag)
                .values(
                    recording_id=recording_id,
                    tag_name=tag_name,
                    tag_value=tag_value,
                    tag_source="mediasense",
                )
                .on_conflict_do_update(
                    index_elements=["recording_id", "tag_name"],
                    set_={"tag_value": tag_value},
                )
            )
            await self.db.execute(stmt)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def build_index_document(
    recording_id: int, values: dict[str, Any], session: CanonicalSession
) -> dict[str, Any]:
    """Denormalized search document for a materialized recording."""
    return {
        "id": recording_id,
        "session_id": session.session_id,
        "agent_id": values["agent_id"],
        "agent_name": session.agent_name,
        "team_code": values["team_code"],
        "team_name": session.team_name,
        "start_time": _iso(session.start_time),
        "end_time": _iso(session.end_time),
        "duration_seconds": values["duration_seconds"],
        "direction": values["direction"],
        "ani": session.ani,
        "dnis": session.dnis,
        "caller_name": session.caller_name,
        "called_name": session.called_name,
        "csq": session.csq,
        "queue_name": session.queue_name,
        "skill_group": session.skill_group,
        "wrap_up_reason": session.wrap_up_reason,
        "call_id": session.call_id,
        "transfer_count": values["transfer_count"],
        "hold_time_seconds": values["hold_time_seconds"],
        "has_audio": values["has_audio"],
        "tags": list(session.tags),
        "search_text": values["search_text"],
    }
