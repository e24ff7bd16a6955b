"""Sync coordinator draining the local capture queue against the server."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from sitevisit.logging import (
    log_state_change,
    log_submit_failed,
    log_submit_success,
    state_logger,
    sync_logger,
)
from sitevisit.sync.queue import LocalCaptureQueue, PendingCaptureRecord
from sitevisit.sync.submitter import SubmitResult
from sitevisit.sync.wake import SYNC_TAG, NullWakeRegistrar, WakeRegistrar

logger = sync_logger()
_state_log = state_logger()


class SyncState(Enum):
    """State of the sync coordinator."""

    IDLE = "idle"
    DRAINING = "draining"
    WAITING_FOR_RECONNECT = "waiting_for_reconnect"


class Submitter(Protocol):
    """Anything that can submit one pending capture."""

    async def submit(self, record: PendingCaptureRecord) -> SubmitResult: ...


@dataclass
class DrainReport:
    """Outcome of one drain run."""

    submitted: int = 0
    failed_id: str | None = None
    error: str | None = None
    skipped: bool = False  # another drain was already running

    @property
    def completed(self) -> bool:
        return not self.skipped and self.failed_id is None and self.error is None


class SyncCoordinator:
    """Drains the local capture queue whenever connectivity allows.

    Records are submitted strictly in enqueue order, one at a time. A record
    is removed from the queue only after the server confirmed it, so a crash
    can at worst resend the single in-flight record. The first failure stops
    the drain; the next reconnect or manual trigger starts again from the
    head of the queue.

    Example:
        coordinator = SyncCoordinator(queue, submitter)
        coordinator.capture("stop-1", "photo", local_blob_ref=path)
        await coordinator.connectivity_restored()
    """

    def __init__(
        self,
        queue: LocalCaptureQueue,
        submitter: Submitter,
        wake_registrar: WakeRegistrar | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            queue: Local queue holding pending captures
            submitter: Client used for each submission
            wake_registrar: Deferred-execution hook, if the runtime has one
        """
        self._queue = queue
        self._submitter = submitter
        self._wake = wake_registrar or NullWakeRegistrar()

        self._state = SyncState.IDLE
        self._drain_lock = asyncio.Lock()
        # Bumped on every connectivity loss so a running drain notices it
        self._connectivity_epoch = 0
        self._restore_pending = False

        self.last_sync_time: datetime | None = None
        self.last_error: str | None = None

        self._state_change_callbacks: list[Callable[[SyncState], None]] = []

    @property
    def state(self) -> SyncState:
        """Get current sync state."""
        return self._state

    @property
    def pending_count(self) -> int:
        """Number of captures not yet confirmed by the server."""
        return self._queue.count()

    @property
    def is_durable(self) -> bool:
        """Whether pending captures survive a restart."""
        return self._queue.is_durable

    def on_state_change(self, callback: Callable[[SyncState], None]) -> None:
        """Register callback for state changes.

        Args:
            callback: Function called with the new SyncState
        """
        self._state_change_callbacks.append(callback)

    def _set_state(self, new_state: SyncState, trigger: str) -> None:
        """Set state and notify callbacks."""
        if self._state == new_state:
            return
        old_state = self._state
        self._state = new_state
        log_state_change(_state_log, old_state.value, new_state.value, trigger)
        for callback in self._state_change_callbacks:
            try:
                callback(new_state)
            except Exception:
                _state_log.exception("State change callback failed")

    def capture(self, visit_stop_id: str, capture_type: str, **fields: Any) -> PendingCaptureRecord:
        """Queue a new capture and ask the runtime for a background sync.

        Args:
            visit_stop_id: Visit stop the capture belongs to
            capture_type: photo, voice_note, reaction or note
            **fields: Optional record fields accepted by LocalCaptureQueue.enqueue

        Returns:
            The queued record
        """
        record = self._queue.enqueue(visit_stop_id, capture_type, **fields)
        try:
            self._wake.register(SYNC_TAG)
        except Exception as e:
            logger.warning(
                "Background sync registration failed",
                extra={"event": "wake_register_failed", "error": str(e)},
            )
        return record

    def connectivity_lost(self) -> None:
        """Record that the network went away."""
        self._connectivity_epoch += 1
        self._restore_pending = False
        self._set_state(SyncState.WAITING_FOR_RECONNECT, "connectivity_lost")

    async def connectivity_restored(self) -> DrainReport:
        """Drain the queue after the network came back.

        If a drain is already running the signal is kept, so a drain that
        saw connectivity drop meanwhile starts over instead of stopping.
        """
        if self._drain_lock.locked():
            self._restore_pending = True
        return await self._drain("connectivity_restored")

    async def trigger(self) -> DrainReport:
        """Drain the queue on explicit user request."""
        return await self._drain("manual_trigger")

    async def background_wake(self) -> DrainReport:
        """Drain the queue from a deferred background run (best effort)."""
        return await self._drain("background_wake")

    def _take_restore(self) -> bool:
        """Consume a reconnect signal that arrived during the running drain."""
        if not self._restore_pending:
            return False
        self._restore_pending = False
        self._set_state(SyncState.DRAINING, "connectivity_restored")
        return True

    async def _drain(self, trigger: str) -> DrainReport:
        if self._drain_lock.locked():
            return DrainReport(skipped=True)

        async with self._drain_lock:
            self._restore_pending = False
            epoch = self._connectivity_epoch
            report = DrainReport()
            self._set_state(SyncState.DRAINING, trigger)

            while True:
                progressed = False
                restarted = False
                for record in self._queue.list_pending():
                    if self._connectivity_epoch != epoch:
                        if self._take_restore():
                            epoch = self._connectivity_epoch
                            restarted = True
                            break
                        report.error = "connectivity lost"
                        return report
                    # A concurrent background drain may already have sent it
                    if not self._queue.contains(record.id):
                        continue

                    result = await self._submitter.submit(record)
                    if not result.success:
                        # Lost and restored while this record was in flight
                        if self._connectivity_epoch != epoch and self._take_restore():
                            epoch = self._connectivity_epoch
                            restarted = True
                            break
                        self.last_error = result.error
                        report.failed_id = record.id
                        report.error = result.error
                        log_submit_failed(
                            logger, record.id, result.error or "unknown", result.retryable
                        )
                        self._set_state(SyncState.WAITING_FOR_RECONNECT, "submit_failed")
                        return report

                    self._queue.remove(record.id)
                    report.submitted += 1
                    progressed = True
                    log_submit_success(logger, record.id, result.capture_id, result.elapsed_ms)

                if restarted:
                    continue
                # Captures queued during the pass are picked up by another pass
                if not progressed or self._queue.count() == 0:
                    break


            self.last_sync_time = datetime.now(timezone.utc)
            self.last_error = None
            self._set_state(SyncState.IDLE, "queue_empty")
            return report

    def status(self) -> dict[str, Any]:
        """Get current sync status for display.

        Returns:
            Dictionary with state, pending count and durability
        """
        return {
            "state": self._state.value,
            "pending": self.pending_count,
            "durable": self.is_durable,
            "last_sync": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "last_error": self.last_error,
        }
