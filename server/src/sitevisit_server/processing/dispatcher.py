"""Routes media assets to their processing pipeline.

Routing is a table from the closed ``FileType`` enum to a handler. The
table is checked at import so adding a file type without deciding how it
is processed fails loudly instead of falling through silently.

Dispatch never raises: a queue that is down or slow is logged and the
asset stays in ``processing`` until someone retries it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from sitevisit_server.errors import TransientIOError
from sitevisit_server.logging import get_logger, log_dispatch
from sitevisit_server.media.values import Derivatives, FileType

if TYPE_CHECKING:
    from sitevisit_server.media.state_machine import MediaAssetStateMachine

logger = get_logger(__name__)


class DispatchOutcome(str, Enum):
    ENQUEUED = "enqueued"
    UNSUPPORTED = "unsupported"  # no pipeline yet, asset stays processing
    PASSTHROUGH = "passthrough"  # nothing to derive, asset marked ready
    ENQUEUE_FAILED = "enqueue_failed"


@dataclass(frozen=True)
class ProcessingTask:
    """One-shot unit of background work for a single asset."""

    name: str
    media_asset_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TaskQueue(Protocol):
    """Anything that accepts processing tasks."""

    async def enqueue(self, task: ProcessingTask) -> None: ...


class ArqTaskQueue:
    """TaskQueue backed by an ARQ Redis pool.

    Jobs are enqueued without retries on the worker side; a failed job
    marks the asset failed and waits for an explicit retry.
    """

    def __init__(self, pool: Any | None, timeout: float = 5.0) -> None:
        """Initialize the queue.

        Args:
            pool: ArqRedis pool, or None when Redis was unavailable at startup
            timeout: Upper bound in seconds for one enqueue
        """
        self._pool = pool
        self._timeout = timeout

    async def enqueue(self, task: ProcessingTask) -> None:
        if self._pool is None:
            raise TransientIOError("Task queue is not connected")
        try:
            job = await asyncio.wait_for(
                self._pool.enqueue_job(task.name, task.media_asset_id),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransientIOError(f"Enqueue of {task.name} timed out") from e
        if job is None:
            raise TransientIOError(f"Task queue refused {task.name}")


class _Handler(Protocol):
    async def handle(self, dispatcher: ProcessingDispatcher, asset_id: str) -> DispatchOutcome: ...


@dataclass(frozen=True)
class EnqueueTask:
    task_name: str

    async def handle(self, dispatcher: ProcessingDispatcher, asset_id: str) -> DispatchOutcome:
        await dispatcher.task_queue.enqueue(ProcessingTask(self.task_name, asset_id))
        return DispatchOutcome.ENQUEUED


@dataclass(frozen=True)
class Unsupported:
    reason: str

    async def handle(self, dispatcher: ProcessingDispatcher, asset_id: str) -> DispatchOutcome:
        logger.info("processing_unsupported", media_asset_id=asset_id, reason=self.reason)
        return DispatchOutcome.UNSUPPORTED


@dataclass(frozen=True)
class Passthrough:
    async def handle(self, dispatcher: ProcessingDispatcher, asset_id: str) -> DispatchOutcome:
        if dispatcher.machine is None:
            raise RuntimeError("Passthrough dispatch needs a state machine")
        await dispatcher.machine.mark_ready(asset_id, Derivatives())
        return DispatchOutcome.PASSTHROUGH


HANDLERS: dict[FileType, _Handler] = {
    FileType.IMAGE: EnqueueTask("process_image"),
    FileType.PDF: EnqueueTask("process_pdf"),
    FileType.VIDEO: Unsupported("video processing not yet implemented"),
    FileType.AUDIO: Unsupported("audio processing not yet implemented"),
    FileType.DOCUMENT: Passthrough(),
}

_unrouted = set(FileType) - HANDLERS.keys()
if _unrouted:
    raise RuntimeError(f"No processing route for file types: {sorted(t.value for t in _unrouted)}")


class ProcessingDispatcher:
    """Hands assets that just entered ``processing`` to their pipeline.

    Example:
        dispatcher = ProcessingDispatcher(ArqTaskQueue(pool), machine)
        outcome = await dispatcher.dispatch(asset.id, FileType.IMAGE)
    """

    def __init__(
        self,
        task_queue: TaskQueue,
        machine: MediaAssetStateMachine | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            task_queue: Where background tasks are sent
            machine: State machine used by passthrough routes
        """
        self.task_queue = task_queue
        self.machine = machine

    async def dispatch(self, media_asset_id: str, file_type: FileType | str) -> DispatchOutcome:
        """Start processing for an asset. Never raises."""
        ftype = FileType(file_type)
        handler = HANDLERS[ftype]
        try:
            outcome = await handler.handle(self, media_asset_id)
        except Exception as e:
            log_dispatch(
                logger,
                media_asset_id,
                ftype.value,
                DispatchOutcome.ENQUEUE_FAILED.value,
                error=str(e) or type(e).__name__,
            )
            return DispatchOutcome.ENQUEUE_FAILED

        log_dispatch(logger, media_asset_id, ftype.value, outcome.value)
        return outcome
