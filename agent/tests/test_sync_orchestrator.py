"""Tests for the connectivity-driven sync orchestrator."""

import pytest

from sitevisit.config import Settings
from sitevisit.engine import SyncOrchestrator
from sitevisit.sync.coordinator import SyncState
from sitevisit.sync.queue import LocalCaptureQueue
from sitevisit.sync.submitter import SubmitResult


class ReachabilitySubmitter:
    """Submitter whose reachability is toggled by the test."""

    def __init__(self) -> None:
        self.reachable = False
        self.submitted: list[str] = []
        self.closed = False

    async def check_server(self) -> bool:
        return self.reachable

    async def submit(self, record) -> SubmitResult:
        self.submitted.append(record.id)
        return SubmitResult(success=True, capture_id=record.id.replace("capture-", "srv-"))

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path, server_url="http://testserver")


class TestCheckOnce:
    @pytest.mark.asyncio
    async def test_offline_check_waits_for_reconnect(self, settings, tmp_path):
        submitter = ReachabilitySubmitter()
        orchestrator = SyncOrchestrator(
            settings, queue=LocalCaptureQueue(tmp_path / "q.db"), submitter=submitter
        )
        orchestrator.capture("V1", "note", caption="Quiet street")

        report = await orchestrator.check_once()

        assert report is None
        assert orchestrator.online is False
        assert orchestrator.coordinator.state == SyncState.WAITING_FOR_RECONNECT
        assert submitter.submitted == []
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_reconnect_drains_queue(self, settings, tmp_path):
        submitter = ReachabilitySubmitter()
        orchestrator = SyncOrchestrator(
            settings, queue=LocalCaptureQueue(tmp_path / "q.db"), submitter=submitter
        )
        first = orchestrator.capture("V1", "note")
        second = orchestrator.capture("V1", "reaction", sentiment="positive")
        await orchestrator.check_once()

        submitter.reachable = True
        report = await orchestrator.check_once()

        assert report is not None and report.completed
        assert submitter.submitted == [first.id, second.id]
        status = orchestrator.get_status()
        assert status["pending"] == 0
        assert status["online"] is True
        assert status["state"] == "idle"

        await orchestrator.stop()
        assert submitter.closed

    @pytest.mark.asyncio
    async def test_reachable_with_empty_queue_does_nothing(self, settings, tmp_path):
        submitter = ReachabilitySubmitter()
        submitter.reachable = True
        orchestrator = SyncOrchestrator(
            settings, queue=LocalCaptureQueue(tmp_path / "q.db"), submitter=submitter
        )

        assert await orchestrator.check_once() is None
        assert orchestrator.coordinator.state == SyncState.IDLE
        await orchestrator.stop()
