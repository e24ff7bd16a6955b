"""Media processing: dispatch routing and background workers."""

from sitevisit_server.processing.dispatcher import (
    ArqTaskQueue,
    DispatchOutcome,
    ProcessingDispatcher,
    ProcessingTask,
    TaskQueue,
)

__all__ = [
    "ArqTaskQueue",
    "DispatchOutcome",
    "ProcessingDispatcher",
    "ProcessingTask",
    "TaskQueue",
]
