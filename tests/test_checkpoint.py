"""Tests for checkpoint parsing and serialization."""

from datetime import UTC, datetime

from recsync.schemas.checkpoint import (
    BackfillCheckpoint,
    BackfillProgress,
    IncrementalCheckpoint,
    dump_checkpoint,
    parse_checkpoint,
)


class TestParseCheckpoint:
    """Tests for parse_checkpoint."""

    def test_empty_means_backfill_pending(self):
        """Test missing checkpoints start a fresh backfill."""
        for value in (None, {}, "garbage", []):
            checkpoint = parse_checkpoint(value)
            assert isinstance(checkpoint, BackfillCheckpoint)
            assert checkpoint.progress is None
            assert checkpoint.backfill_complete is False

    def test_incremental(self):
        checkpoint = parse_checkpoint(
            {
                "mode": "incremental",
                "last_sync_time": "2024-01-18T10:30:00+00:00",
                "last_seen_id": "S-9",
            }
        )

        assert isinstance(checkpoint, IncrementalCheckpoint)
        assert checkpoint.backfill_complete is True
        assert checkpoint.last_sync_time == datetime(2024, 1, 18, 10, 30, tzinfo=UTC)
        assert checkpoint.last_seen_id == "S-9"

    def test_backfill_with_progress(self):
        checkpoint = parse_checkpoint(
            {
                "mode": "backfill",
                "last_sync_time": None,
                "progress": {
                    "current_date": "2024-01-02T00:00:00Z",
                    "start_date": "2024-01-01T00:00:00Z",
                    "end_date": "2024-06-29T00:00:00Z",
                },
            }
        )

        assert isinstance(checkpoint, BackfillCheckpoint)
        assert checkpoint.progress.current_date == datetime(2024, 1, 2, tzinfo=UTC)

    def test_naive_times_are_utc(self):
        checkpoint = parse_checkpoint(
            {"mode": "incremental", "last_sync_time": "2024-01-18T10:30:00"}
        )
        assert checkpoint.last_sync_time.tzinfo is not None

    def test_legacy_blob_complete(self):
        """Test the flat camelCase blob with backfillComplete=true."""
        checkpoint = parse_checkpoint(
            {
                "lastSyncTime": "2024-01-18T10:30:00.000Z",
                "lastSeenId": "S-1",
                "backfillComplete": True,
            }
        )

        assert isinstance(checkpoint, IncrementalCheckpoint)
        assert checkpoint.last_seen_id == "S-1"

    def test_legacy_blob_in_progress(self):
        checkpoint = parse_checkpoint(
            {
                "lastSyncTime": None,
                "backfillComplete": False,
                "backfillProgress": {
                    "currentDate": "2024-01-05T00:00:00.000Z",
                    "startDate": "2024-01-01T00:00:00.000Z",
                    "endDate": "2024-06-29T00:00:00.000Z",
                },
            }
        )

        assert isinstance(checkpoint, BackfillCheckpoint)
        assert checkpoint.progress.current_date == datetime(2024, 1, 5, tzinfo=UTC)

    def test_unknown_mode_restarts_backfill(self):
        checkpoint = parse_checkpoint({"mode": "sideways", "last_sync_time": None})
        assert isinstance(checkpoint, BackfillCheckpoint)


class TestDumpCheckpoint:
    """Tests for dump_checkpoint."""

    def test_dump_is_json_safe_and_tagged(self):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        checkpoint = BackfillCheckpoint(
            last_sync_time=start,
            progress=BackfillProgress(
                current_date=start, start_date=start, end_date=datetime(2024, 6, 29, tzinfo=UTC)
            ),
        )

        data = dump_checkpoint(checkpoint)

        assert data["mode"] == "backfill"
        assert isinstance(data["last_sync_time"], str)
        assert isinstance(data["progress"]["end_date"], str)
        assert parse_checkpoint(data) == checkpoint
