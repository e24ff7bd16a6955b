"""Sync module for the offline capture queue and its drain loop."""

from sitevisit.sync.coordinator import DrainReport, SyncCoordinator, SyncState
from sitevisit.sync.queue import (
    CapturedBy,
    CaptureType,
    InvalidCaptureError,
    LocalCaptureQueue,
    Location,
    PendingCaptureRecord,
)
from sitevisit.sync.submitter import CaptureSubmitter, SubmitResult

__all__ = [
    "CaptureSubmitter",
    "CaptureType",
    "CapturedBy",
    "DrainReport",
    "InvalidCaptureError",
    "LocalCaptureQueue",
    "Location",
    "PendingCaptureRecord",
    "SubmitResult",
    "SyncCoordinator",
    "SyncState",
]
