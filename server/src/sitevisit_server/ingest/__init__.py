"""Capture ingest service."""

from sitevisit_server.ingest.service import (
    CaptureIngestService,
    CaptureSubmission,
    CaptureType,
    IngestResult,
)

__all__ = ["CaptureIngestService", "CaptureSubmission", "CaptureType", "IngestResult"]
