"""Sync orchestrator coordinating the capture queue, connectivity, and drains."""

import asyncio
import logging
from typing import Any

from sitevisit.config import Settings
from sitevisit.sync import (
    CaptureSubmitter,
    DrainReport,
    LocalCaptureQueue,
    SyncCoordinator,
    SyncState,
)
from sitevisit.sync.queue import PendingCaptureRecord
from sitevisit.sync.wake import WakeRegistrar

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """High-level orchestrator for offline capture sync.

    Owns the local queue, the submitter and the coordinator, and runs a
    connectivity watcher that turns server reachability into coordinator
    signals. This is the entry point the CLI uses.

    Example:
        orchestrator = SyncOrchestrator(settings)
        await orchestrator.start()
        # ... run until stopped ...
        await orchestrator.stop()
    """

    def __init__(
        self,
        config: Settings,
        queue: LocalCaptureQueue | None = None,
        submitter: CaptureSubmitter | None = None,
        wake_registrar: WakeRegistrar | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Settings instance with all configuration
            queue: Optional pre-built queue (defaults to the configured file)
            submitter: Optional pre-built submitter
            wake_registrar: Optional deferred-execution registrar
        """
        self.config = config
        self._log = logger

        self._queue = queue or LocalCaptureQueue(config.queue_path)
        self._submitter = submitter or CaptureSubmitter(
            server_url=config.server_url,
            timeout=config.submit_timeout,
        )
        self.coordinator = SyncCoordinator(self._queue, self._submitter, wake_registrar)
        self.coordinator.on_state_change(self._handle_state_change)

        self._running = False
        self._online: bool | None = None
        self._watch_task: asyncio.Task | None = None
        self._wake_event = asyncio.Event()

    @property
    def online(self) -> bool | None:
        """Last observed server reachability (None before the first check)."""
        return self._online

    def capture(self, visit_stop_id: str, capture_type: str, **fields: Any) -> PendingCaptureRecord:
        """Queue a capture and wake the watcher so it is sent promptly."""
        record = self.coordinator.capture(visit_stop_id, capture_type, **fields)
        self._wake_event.set()
        return record

    async def start(self) -> None:
        """Start the connectivity watcher in the background."""
        if self._running:
            return
        self._running = True
        self._log.info(
            "Starting sync orchestrator, server_url=%s, durable_queue=%s",
            self.config.server_url,
            self._queue.is_durable,
        )
        self._watch_task = asyncio.create_task(self._connectivity_worker())

    async def check_once(self) -> DrainReport | None:
        """Check the server once and signal the coordinator accordingly.

        Returns:
            The drain report if a drain ran, otherwise None
        """
        reachable = await self._submitter.check_server()
        was_online = self._online
        self._online = reachable

        if not reachable:
            if was_online or self.coordinator.state != SyncState.WAITING_FOR_RECONNECT:
                self.coordinator.connectivity_lost()
            return None

        if was_online is False:
            self._log.info("Server reachable again, pending=%d", self.coordinator.pending_count)

        # Every check that finds the server reachable acts as a reconnect
        # signal while work remains.
        if self.coordinator.pending_count > 0 and self.coordinator.state != SyncState.DRAINING:
            return await self.coordinator.connectivity_restored()
        return None

    async def _connectivity_worker(self) -> None:
        """Background worker polling server reachability."""
        while self._running:
            try:
                await self.check_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._log.error("Connectivity worker error: %s", e)

            self._wake_event.clear()
            try:
                await asyncio.wait_for(
                    self._wake_event.wait(),
                    timeout=self.config.connectivity_poll_interval,
                )
            except asyncio.TimeoutError:
                pass

    def _handle_state_change(self, new_state: SyncState) -> None:
        """Handle state change event."""
        self._log.info(
            "Sync state changed: state=%s, pending=%d",
            new_state.value,
            self.coordinator.pending_count,
        )

    async def stop(self) -> None:
        """Stop the orchestrator gracefully.

        An in-flight submission is not interrupted mid-request by the
        coordinator; cancelling here simply leaves unsent records pending.
        """
        self._running = False
        self._wake_event.set()

        if self._watch_task and not self._watch_task.done():
            self._watch_task.cancel()
            try:
                await self._watch_task
            except asyncio.CancelledError:
                pass

        await self._submitter.close()
        self._queue.close()
        self._log.info("Sync orchestrator stopped")

    def get_status(self) -> dict[str, Any]:
        """Get current orchestrator status.

        Returns:
            Dictionary with connectivity, sync state and queue info
        """
        status = self.coordinator.status()
        status["online"] = self._online
        status["server_url"] = self.config.server_url
        status["queue_path"] = str(self._queue.db_path) if self._queue.db_path else None
        return status
