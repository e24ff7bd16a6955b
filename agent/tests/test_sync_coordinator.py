"""Tests for the sync coordinator drain loop.

Uses a scripted submitter so every scenario is deterministic.
"""

import asyncio

import pytest

from sitevisit.sync.coordinator import SyncCoordinator, SyncState
from sitevisit.sync.queue import LocalCaptureQueue, PendingCaptureRecord
from sitevisit.sync.submitter import SubmitResult
from sitevisit.sync.wake import SYNC_TAG, CallbackWakeRegistrar


class FakeSubmitter:
    """Submitter that fails on chosen local ids and records every call."""

    def __init__(self, fail_ids: set[str] | None = None) -> None:
        self.fail_ids = fail_ids or set()
        self.submitted: list[str] = []
        self.on_submit = None

    async def submit(self, record: PendingCaptureRecord) -> SubmitResult:
        self.submitted.append(record.id)
        if self.on_submit:
            self.on_submit(record)
        if record.id in self.fail_ids:
            return SubmitResult(success=False, error="Server returned 503: unavailable")
        return SubmitResult(success=True, capture_id=f"srv-{len(self.submitted)}")


@pytest.fixture
def queue(tmp_path):
    q = LocalCaptureQueue(tmp_path / "queue.db")
    yield q
    q.close()


class TestDrain:
    """Ordered, stop-on-first-failure draining."""

    @pytest.mark.asyncio
    async def test_drain_submits_all_in_order(self, queue):
        ids = [queue.enqueue("stop-1", "note", caption=str(i)).id for i in range(3)]
        submitter = FakeSubmitter()
        coordinator = SyncCoordinator(queue, submitter)

        report = await coordinator.connectivity_restored()

        assert submitter.submitted == ids
        assert report.completed
        assert report.submitted == 3
        assert queue.count() == 0
        assert coordinator.state == SyncState.IDLE
        assert coordinator.last_sync_time is not None

    @pytest.mark.asyncio
    async def test_failure_stops_drain_and_keeps_rest(self, queue):
        """Records before the failure are removed, the failed one and later remain."""
        ids = [queue.enqueue("stop-1", "note").id for _ in range(5)]
        submitter = FakeSubmitter(fail_ids={ids[2]})
        coordinator = SyncCoordinator(queue, submitter)

        report = await coordinator.trigger()

        assert submitter.submitted == ids[:3]
        assert report.failed_id == ids[2]
        assert report.submitted == 2
        assert not report.completed
        assert [r.id for r in queue.list_pending()] == ids[2:]
        assert coordinator.state == SyncState.WAITING_FOR_RECONNECT
        assert "503" in coordinator.last_error

    @pytest.mark.asyncio
    async def test_next_drain_restarts_from_failed_record(self, queue):
        ids = [queue.enqueue("stop-1", "note").id for _ in range(3)]
        submitter = FakeSubmitter(fail_ids={ids[1]})
        coordinator = SyncCoordinator(queue, submitter)

        await coordinator.trigger()
        submitter.fail_ids.clear()
        report = await coordinator.connectivity_restored()

        # ids[0] is never resent
        assert submitter.submitted == [ids[0], ids[1], ids[1], ids[2]]
        assert report.completed
        assert queue.count() == 0
        assert coordinator.last_error is None

    @pytest.mark.asyncio
    async def test_empty_queue_goes_idle(self, queue):
        coordinator = SyncCoordinator(queue, FakeSubmitter())
        report = await coordinator.trigger()
        assert report.completed
        assert report.submitted == 0
        assert coordinator.state == SyncState.IDLE

    @pytest.mark.asyncio
    async def test_captures_added_during_drain_are_sent(self, queue):
        queue.enqueue("stop-1", "note")
        submitter = FakeSubmitter()
        coordinator = SyncCoordinator(queue, submitter)

        added: list[str] = []

        def add_one(record):
            if not added:
                added.append(queue.enqueue("stop-1", "note").id)

        submitter.on_submit = add_one
        report = await coordinator.trigger()

        assert report.submitted == 2
        assert submitter.submitted[-1] == added[0]
        assert queue.count() == 0

    @pytest.mark.asyncio
    async def test_concurrent_drain_is_skipped(self, queue):
        """Only one drain runs at a time, so nothing is submitted twice."""
        ids = [queue.enqueue("stop-1", "note").id for _ in range(3)]
        release = asyncio.Event()

        class SlowSubmitter(FakeSubmitter):
            async def submit(self, record):
                await release.wait()
                return await super().submit(record)

        submitter = SlowSubmitter()
        coordinator = SyncCoordinator(queue, submitter)

        first = asyncio.create_task(coordinator.connectivity_restored())
        await asyncio.sleep(0)
        second = await coordinator.background_wake()
        release.set()
        report = await first

        assert second.skipped
        assert report.completed
        assert submitter.submitted == ids

    @pytest.mark.asyncio
    async def test_connectivity_lost_aborts_drain(self, queue):
        ids = [queue.enqueue("stop-1", "note").id for _ in range(3)]
        submitter = FakeSubmitter()
        coordinator = SyncCoordinator(queue, submitter)
        submitter.on_submit = lambda record: coordinator.connectivity_lost()

        report = await coordinator.connectivity_restored()

        # The in-flight submission completes, the rest waits for reconnect
        assert submitter.submitted == [ids[0]]
        assert report.error == "connectivity lost"
        assert queue.count() == 2
        assert coordinator.state == SyncState.WAITING_FOR_RECONNECT

    @pytest.mark.asyncio
    async def test_reconnect_during_submission_continues_drain(self, queue):
        """Lost and restored while a record is in flight: the drain carries on."""
        ids = [queue.enqueue("stop-1", "note").id for _ in range(3)]
        coordinator = None
        restore_reports = []

        class FlappingSubmitter(FakeSubmitter):
            async def submit(self, record):
                if not self.submitted:
                    coordinator.connectivity_lost()
                    restore_reports.append(await coordinator.connectivity_restored())
                return await super().submit(record)

        submitter = FlappingSubmitter()
        coordinator = SyncCoordinator(queue, submitter)

        report = await coordinator.connectivity_restored()

        assert restore_reports[0].skipped
        assert report.completed
        assert report.submitted == 3
        assert submitter.submitted == ids
        assert queue.count() == 0
        assert coordinator.state == SyncState.IDLE

    @pytest.mark.asyncio
    async def test_reconnect_after_failed_submission_retries_it(self, queue):
        ids = [queue.enqueue("stop-1", "note").id for _ in range(2)]
        coordinator = None

        class DroppedSubmitter(FakeSubmitter):
            async def submit(self, record):
                if not self.submitted:
                    self.submitted.append(record.id)
                    coordinator.connectivity_lost()
                    await coordinator.connectivity_restored()
                    return SubmitResult(success=False, error="Connection error: reset")
                return await super().submit(record)

        submitter = DroppedSubmitter()
        coordinator = SyncCoordinator(queue, submitter)

        report = await coordinator.connectivity_restored()

        assert submitter.submitted == [ids[0], ids[0], ids[1]]
        assert report.completed
        assert queue.count() == 0

    @pytest.mark.asyncio
    async def test_loss_after_reconnect_still_aborts(self, queue):
        ids = [queue.enqueue("stop-1", "note").id for _ in range(3)]
        coordinator = None

        class FlappingSubmitter(FakeSubmitter):
            async def submit(self, record):
                if not self.submitted:
                    coordinator.connectivity_lost()
                    await coordinator.connectivity_restored()
                    coordinator.connectivity_lost()
                return await super().submit(record)

        submitter = FlappingSubmitter()
        coordinator = SyncCoordinator(queue, submitter)

        report = await coordinator.connectivity_restored()

        assert submitter.submitted == [ids[0]]
        assert report.error == "connectivity lost"
        assert queue.count() == 2
        assert coordinator.state == SyncState.WAITING_FOR_RECONNECT



class TestOfflineScenario:
    """Captures made offline are delivered after reconnect."""

    @pytest.mark.asyncio
    async def test_offline_captures_delivered_on_reconnect(self, tmp_path):
        db_path = tmp_path / "queue.db"
        queue = LocalCaptureQueue(db_path)
        submitter = FakeSubmitter()
        coordinator = SyncCoordinator(queue, submitter)

        coordinator.connectivity_lost()
        photo = coordinator.capture("V1", "photo", local_blob_ref=str(tmp_path / "p.jpg"))
        reaction = coordinator.capture("V1", "reaction", sentiment="positive")

        assert coordinator.state == SyncState.WAITING_FOR_RECONNECT
        assert coordinator.pending_count == 2
        assert submitter.submitted == []

        # Simulated restart while still offline
        queue.close()
        queue = LocalCaptureQueue(db_path)
        coordinator = SyncCoordinator(queue, submitter)
        assert coordinator.pending_count == 2

        report = await coordinator.connectivity_restored()
        queue.close()

        assert submitter.submitted == [photo.id, reaction.id]
        assert report.completed


class TestCallbacksAndWake:
    """State callbacks and background wake registration."""

    def test_capture_registers_wake(self, queue):
        tags: list[str] = []
        registrar = CallbackWakeRegistrar(tags.append)
        coordinator = SyncCoordinator(queue, FakeSubmitter(), registrar)

        coordinator.capture("stop-1", "note")

        assert tags == [SYNC_TAG]
        assert SYNC_TAG in registrar.registered

    def test_wake_failure_does_not_lose_capture(self, queue):
        def broken(tag):
            raise RuntimeError("scheduler unavailable")

        coordinator = SyncCoordinator(queue, FakeSubmitter(), CallbackWakeRegistrar(broken))

        record = coordinator.capture("stop-1", "note")

        assert queue.contains(record.id)

    @pytest.mark.asyncio
    async def test_state_change_callbacks(self, queue):
        queue.enqueue("stop-1", "note")
        coordinator = SyncCoordinator(queue, FakeSubmitter())
        states: list[SyncState] = []
        coordinator.on_state_change(states.append)

        await coordinator.trigger()

        assert states == [SyncState.DRAINING, SyncState.IDLE]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_drain(self, queue):
        queue.enqueue("stop-1", "note")
        coordinator = SyncCoordinator(queue, FakeSubmitter())

        def bad_callback(state):
            raise ValueError("boom")

        coordinator.on_state_change(bad_callback)
        report = await coordinator.trigger()

        assert report.completed

    def test_status_reports_queue(self, queue):
        coordinator = SyncCoordinator(queue, FakeSubmitter())
        coordinator.capture("stop-1", "note")

        status = coordinator.status()

        assert status["state"] == "idle"
        assert status["pending"] == 1
        assert status["durable"] is True
        assert status["last_sync"] is None
