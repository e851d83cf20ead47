"""Tests for the recording upsert engine."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select

from recsync.models import Agent, Recording, RecordingParticipant, RecordingTag
from recsync.schemas.session import CanonicalSession, ParticipantData
from recsync.services.normalizer import normalize_session
from recsync.services.upsert import RecordingUpserter, needs_resync

START = datetime(2024, 1, 18, 10, 30, tzinfo=UTC)


def canonical(end: datetime | None = None, **extra) -> CanonicalSession:
    fields = {
        "session_id": "SESS-1",
        "start_time": START,
        "end_time": end,
        "agent_id": "agent-1",
        "agent_name": "Jane Doe",
    }
    fields.update(extra)
    return CanonicalSession(**fields)


def participants(n: int) -> list[ParticipantData]:
    return [ParticipantData(type="party", id=f"p-{i}") for i in range(n)]


async def count(db, model) -> int:
    result = await db.execute(select(func.count(model.id)))
    return result.scalar_one()


class TestNeedsResync:
    """Tests for the maturity rule."""

    def test_stored_end_unknown(self):
        assert needs_resync(None, START) is True
        assert needs_resync(None, None) is True

    def test_fetched_end_later(self):
        assert needs_resync(START, START + timedelta(seconds=1)) is True

    def test_fetched_end_same_or_earlier(self):
        assert needs_resync(START, START) is False
        assert needs_resync(START, START - timedelta(minutes=5)) is False
        assert needs_resync(START, None) is False

    def test_naive_stored_value(self):
        """Test naive stored values compare as UTC."""
        naive = START.replace(tzinfo=None)
        assert needs_resync(naive, START) is False
        assert needs_resync(naive, START + timedelta(minutes=1)) is True


class TestRecordingUpserter:
    """Tests for RecordingUpserter."""

    @pytest.mark.asyncio
    async def test_create(self, db_session, sample_raw_session):
        """Test a new session is inserted with its participants and tags."""
        upserter = RecordingUpserter(db_session)
        session = normalize_session(sample_raw_session)

        outcome = await upserter.upsert(session)
        await db_session.commit()

        assert outcome.result == "created"
        assert outcome.recording_id is not None
        recording = await db_session.get(Recording, outcome.recording_id)
        assert recording.session_id == "SESS-1001"
        assert recording.direction == "outbound"
        assert recording.has_audio is True
        assert recording.audio_size_bytes == 2650000
        assert "Billing_CSQ" in recording.search_text
        assert await count(db_session, RecordingParticipant) == 2
        assert await count(db_session, RecordingTag) == 2

    @pytest.mark.asyncio
    async def test_idempotent_skip(self, db_session):
        """Test upserting the same completed session twice writes once."""
        upserter = RecordingUpserter(db_session)
        end = START + timedelta(minutes=5)

        first = await upserter.upsert(canonical(end, participants=participants(2)))
        await db_session.commit()
        second = await upserter.upsert(canonical(end, participants=participants(2)))
        await db_session.commit()

        assert first.result == "created"
        assert second.result == "skipped"
        assert second.document is None
        assert await count(db_session, Recording) == 1
        assert await count(db_session, RecordingParticipant) == 2

    @pytest.mark.asyncio
    async def test_maturing_session_is_updated(self, db_session):
        """Test a session with no end time is updated once it ends."""
        upserter = RecordingUpserter(db_session)

        first = await upserter.upsert(canonical(None))
        await db_session.commit()
        end = START + timedelta(minutes=7)
        second = await upserter.upsert(canonical(end, duration_seconds=420))
        await db_session.commit()

        assert first.result == "created"
        assert second.result == "updated"
        assert second.recording_id == first.recording_id
        recording = await db_session.get(Recording, first.recording_id)
        await db_session.refresh(recording)
        assert recording.duration_seconds == 420
        assert recording.end_time.replace(tzinfo=UTC) == end

    @pytest.mark.asyncio
    async def test_stale_end_time_is_skipped(self, db_session):
        """Test an older end time never overwrites a newer stored one."""
        upserter = RecordingUpserter(db_session)
        end = START + timedelta(minutes=10)

        await upserter.upsert(canonical(end))
        await db_session.commit()
        outcome = await upserter.upsert(canonical(end - timedelta(minutes=2)))

        assert outcome.result == "skipped"

    @pytest.mark.asyncio
    async def test_participants_replaced_on_update(self, db_session):
        """Test a re-sync replaces the participant set instead of appending."""
        upserter = RecordingUpserter(db_session)

        created = await upserter.upsert(canonical(None, participants=participants(3)))
        await db_session.commit()
        await upserter.upsert(
            canonical(START + timedelta(minutes=1), participants=participants(1))
        )
        await db_session.commit()

        result = await db_session.execute(
            select(RecordingParticipant).where(
                RecordingParticipant.recording_id == created.recording_id
            )
        )
        rows = result.scalars().all()
        assert len(rows) == 1
        assert rows[0].participant_id == "p-0"

    @pytest.mark.asyncio
    async def test_tags_upserted(self, db_session):
        """Test tag values are replaced per (recording, name) and new tags added."""
        upserter = RecordingUpserter(db_session)

        created = await upserter.upsert(canonical(None, tags={"priority": "low"}))
        await db_session.commit()
        await upserter.upsert(
            canonical(START + timedelta(minutes=1), tags={"priority": "high", "vip": "yes"})
        )
        await db_session.commit()

        result = await db_session.execute(
            select(RecordingTag.tag_name, RecordingTag.tag_value)
            .where(RecordingTag.recording_id == created.recording_id)
            .order_by(RecordingTag.tag_name)
        )
        assert result.all() == [("priority", "high"), ("vip", "yes")]

    @pytest.mark.asyncio
    async def test_agent_resolution(self, db_session):
        """Test recordings link to the local agent by id, then by name."""
        db_session.add_all(
            [
                Agent(agent_id="agent-1", full_name="Jane Doe"),
                Agent(agent_id="agent-2", full_name="Samuel Lee"),
            ]
        )
        await db_session.commit()
        upserter = RecordingUpserter(db_session)

        by_id = await upserter.resolve_agent("agent-1", None)
        by_name = await upserter.resolve_agent("unknown-id", "samuel")
        missing = await upserter.resolve_agent("nobody", "Nobody At All")

        assert by_id is not None
        assert by_name is not None and by_name != by_id
        assert missing is None
        assert await upserter.resolve_agent(None, None) is None

    @pytest.mark.asyncio
    async def test_index_document(self, db_session):
        """Test created/updated outcomes carry a search document."""
        upserter = RecordingUpserter(db_session)

        outcome = await upserter.upsert(canonical(None, tags={"priority": "low"}))

        doc = outcome.document
        assert doc["id"] == outcome.recording_id
        assert doc["session_id"] == "SESS-1"
        assert doc["start_time"] == START.isoformat()
        assert doc["end_time"] is None
        assert doc["tags"] == ["priority"]
