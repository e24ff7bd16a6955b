"""Tests for the persistent local capture queue.

Covers:
- Records survive a restart in enqueue order
- Removal is idempotent
- Count always reflects storage
- Session-only fallback when the database cannot be opened
- Lazy, finite and restartable iteration
"""

import tempfile
from pathlib import Path

import pytest

from sitevisit.sync.queue import (
    CapturedBy,
    CaptureType,
    InvalidCaptureError,
    LocalCaptureQueue,
    Location,
)


class TestQueuePersistence:
    """Pending captures must outlive the process that queued them."""

    def test_queue_persists_across_restart(self):
        """Records written before a restart are listed after it."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "queue.db"

            queue1 = LocalCaptureQueue(db_path)
            record = queue1.enqueue(
                "stop-1",
                "photo",
                local_blob_ref="/tmp/kitchen.jpg",
                caption="Kitchen view",
                location=Location(lat=55.67, lng=12.56),
            )
            queue1.close()

            queue2 = LocalCaptureQueue(db_path)
            pending = list(queue2.list_pending())
            queue2.close()

            assert len(pending) == 1
            assert pending[0] == record
            assert pending[0].location == Location(lat=55.67, lng=12.56)
            assert pending[0].capture_type is CaptureType.PHOTO

    def test_queue_maintains_order(self):
        """Records come back oldest first, also after a restart."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "queue.db"

            queue1 = LocalCaptureQueue(db_path)
            ids = [queue1.enqueue("stop-1", "note", caption=f"note {i}").id for i in range(5)]
            queue1.close()

            queue2 = LocalCaptureQueue(db_path)
            listed = [r.id for r in queue2.list_pending()]
            queue2.close()

            assert listed == ids

    def test_count_matches_storage_after_reload(self):
        """count() reads storage, never a cached value."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "queue.db"

            queue1 = LocalCaptureQueue(db_path)
            first = queue1.enqueue("stop-1", "reaction", sentiment="positive")
            queue1.enqueue("stop-1", "reaction", sentiment="negative")
            queue1.remove(first.id)
            queue1.close()

            queue2 = LocalCaptureQueue(db_path)
            assert queue2.count() == 1
            assert queue2.count() == len(list(queue2.list_pending()))
            queue2.close()

    def test_is_durable_with_file(self, tmp_path):
        queue = LocalCaptureQueue(tmp_path / "queue.db")
        assert queue.is_durable is True
        queue.close()


class TestQueueOperations:
    """Enqueue, lookup and removal semantics."""

    @pytest.fixture
    def queue(self, tmp_path):
        q = LocalCaptureQueue(tmp_path / "queue.db")
        yield q
        q.close()

    def test_enqueue_generates_unique_ids(self, queue):
        ids = {queue.enqueue("stop-1", "note").id for _ in range(20)}
        assert len(ids) == 20
        assert all(i.startswith("capture-") for i in ids)

    def test_enqueue_defaults_captured_by_sales(self, queue):
        record = queue.enqueue("stop-1", "voice_note", transcript="Love the light")
        assert record.captured_by is CapturedBy.SALES

    def test_enqueue_rejects_missing_visit_stop(self, queue):
        with pytest.raises(InvalidCaptureError):
            queue.enqueue("", "photo")
        assert queue.count() == 0

    def test_enqueue_rejects_unknown_type(self, queue):
        with pytest.raises(InvalidCaptureError):
            queue.enqueue("stop-1", "hologram")

    def test_enqueue_rejects_unknown_author(self, queue):
        with pytest.raises(InvalidCaptureError):
            queue.enqueue("stop-1", "note", captured_by="landlord")

    @pytest.mark.parametrize("capture_type", ["note", "reaction"])
    def test_enqueue_rejects_file_on_textual_capture(self, queue, capture_type):
        with pytest.raises(InvalidCaptureError, match="cannot carry a file"):
            queue.enqueue("stop-1", capture_type, local_blob_ref="/tmp/extra.jpg")

        assert queue.count() == 0

    def test_remove_is_idempotent(self, queue):
        """Removing twice, or removing an unknown id, is a no-op."""
        record = queue.enqueue("stop-1", "note")
        other = queue.enqueue("stop-1", "note")

        assert queue.remove(record.id) is True
        assert queue.remove(record.id) is False
        assert queue.remove("capture-unknown") is False

        assert queue.count() == 1
        assert queue.contains(other.id)
        assert not queue.contains(record.id)

    def test_get_returns_record(self, queue):
        record = queue.enqueue("stop-2", "note", caption="Parking")
        assert queue.get(record.id) == record
        assert queue.get("capture-missing") is None

    def test_submission_payload(self, queue):
        record = queue.enqueue(
            "stop-1",
            "photo",
            local_blob_ref="/data/captures/img_001.jpg",
            captured_by="client",
        )
        payload = record.to_submission("2026/10/19/abc.jpg")

        assert payload["visit_stop_id"] == "stop-1"
        assert payload["capture_type"] == "photo"
        assert payload["captured_by"] == "client"
        assert payload["storage_locator"] == "2026/10/19/abc.jpg"
        assert payload["file_name"] == "img_001.jpg"
        assert payload["location"] is None


class TestQueueIteration:
    """list_pending is lazy, finite and restartable."""

    def test_iteration_is_restartable(self, tmp_path):
        queue = LocalCaptureQueue(tmp_path / "queue.db")
        for i in range(7):
            queue.enqueue("stop-1", "note", caption=str(i))

        first = [r.id for r in queue.list_pending(batch_size=3)]
        second = [r.id for r in queue.list_pending(batch_size=3)]
        queue.close()

        assert len(first) == 7
        assert first == second

    def test_iteration_ignores_records_added_meanwhile(self, tmp_path):
        """A pass ends at the newest record present when it started."""
        queue = LocalCaptureQueue(tmp_path / "queue.db")
        queue.enqueue("stop-1", "note")
        queue.enqueue("stop-1", "note")

        seen = 0
        for _ in queue.list_pending(batch_size=1):
            queue.enqueue("stop-1", "note")
            seen += 1

        assert seen == 2
        assert queue.count() == 4
        queue.close()

    def test_iteration_skips_removed_records(self, tmp_path):
        queue = LocalCaptureQueue(tmp_path / "queue.db")
        records = [queue.enqueue("stop-1", "note") for _ in range(4)]

        iterator = queue.list_pending(batch_size=2)
        assert next(iterator).id == records[0].id
        queue.remove(records[1].id)
        queue.remove(records[2].id)
        queue.remove(records[3].id)
        remaining = [r.id for r in iterator]
        queue.close()

        # The first batch was already fetched
        assert remaining == [records[1].id]

    def test_empty_queue_yields_nothing(self, tmp_path):
        queue = LocalCaptureQueue(tmp_path / "queue.db")
        assert list(queue.list_pending()) == []
        queue.close()


class TestQueueFallback:
    """Session-only operation when durable storage is unavailable."""

    def test_falls_back_to_memory_when_path_unusable(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("occupied")

        queue = LocalCaptureQueue(blocker / "queue.db")

        assert queue.is_durable is False
        record = queue.enqueue("stop-1", "note")
        assert [r.id for r in queue.list_pending()] == [record.id]
        queue.close()

    def test_no_path_is_session_only(self):
        with LocalCaptureQueue(None) as queue:
            queue.enqueue("stop-1", "note")
            assert queue.is_durable is False
            assert queue.count() == 1
