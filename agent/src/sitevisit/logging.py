"""Structured JSON logging for the site visit agent.

Provides audit-friendly logging with contextual fields for queue events,
submissions, and sync state changes. Captions, transcripts and other capture
content are never logged, only identifiers.

Usage:
    from sitevisit.logging import setup_logging, get_logger

    setup_logging("INFO")
    log = get_logger("sitevisit.sync")
    log.info("capture_enqueued", extra={"local_id": "capture-...", "visit_stop_id": "V1"})
"""

from __future__ import annotations

import logging
import sys
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pythonjsonlogger import jsonlogger

from sitevisit import __version__


class SiteVisitJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping every record with agent version and device."""

    def __init__(self, device_id: str | None = None) -> None:
        super().__init__(
            "%(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
            timestamp=True,
        )
        self.device_id = device_id

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["agent_version"] = __version__
        if self.device_id:
            log_record["device_id"] = self.device_id


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    device_id: str | None = None,
    max_bytes: int = 5_000_000,
    backup_count: int = 3,
) -> None:
    """Send JSON logs to stderr and, optionally, a rotating file.

    stdout is left to CLI output.
    """
    formatter = SiteVisitJsonFormatter(device_id)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


@lru_cache(maxsize=32)
def get_logger(name: str) -> logging.Logger:
    """Named logger under the ``sitevisit`` hierarchy."""
    return logging.getLogger(name)


def queue_logger() -> logging.Logger:
    """Get logger for local queue events."""
    return get_logger("sitevisit.queue")


def sync_logger() -> logging.Logger:
    """Get logger for submission events."""
    return get_logger("sitevisit.sync")


def state_logger() -> logging.Logger:
    """Get logger for sync state changes."""
    return get_logger("sitevisit.state")


# --- Audit Event Functions ---


def log_capture_enqueued(
    logger: logging.Logger,
    local_id: str,
    visit_stop_id: str,
    capture_type: str,
    durable: bool,
) -> None:
    """Log a capture written to the local queue.

    Args:
        logger: Logger instance
        local_id: Locally generated capture id
        visit_stop_id: Visit stop the capture belongs to
        capture_type: photo, voice_note, reaction or note
        durable: Whether the queue is backed by a file
    """
    logger.info(
        "Capture enqueued",
        extra={
            "event": "capture_enqueued",
            "local_id": local_id,
            "visit_stop_id": visit_stop_id,
            "capture_type": capture_type,
            "durable": durable,
        },
    )


def log_durability_degraded(logger: logging.Logger, db_path: str, error: str) -> None:
    """Log the fallback to an in-memory queue.

    Args:
        logger: Logger instance
        db_path: Path that could not be opened
        error: Underlying error message
    """
    logger.warning(
        "Local queue is not durable, captures will be lost on restart",
        extra={
            "event": "queue_durability_degraded",
            "db_path": db_path,
            "error": error,
        },
    )


def log_submit_success(
    logger: logging.Logger,
    local_id: str,
    capture_id: str | None,
    elapsed_ms: float,
) -> None:
    """Log a confirmed submission.

    Args:
        logger: Logger instance
        local_id: Local queue id
        capture_id: Server capture id, if returned
        elapsed_ms: Time spent on the submission in milliseconds
    """
    logger.info(
        "Submission confirmed",
        extra={
            "event": "submit_success",
            "local_id": local_id,
            "capture_id": capture_id,
            "elapsed_ms": round(elapsed_ms, 2),
        },
    )


def log_submit_failed(
    logger: logging.Logger,
    local_id: str,
    error: str,
    retryable: bool,
) -> None:
    """Log a failed submission.

    Args:
        logger: Logger instance
        local_id: Local queue id
        error: Error message (no capture content)
        retryable: Whether a later drain can be expected to succeed
    """
    logger.warning(
        "Submission failed",
        extra={
            "event": "submit_failed",
            "local_id": local_id,
            "error": error,
            "retryable": retryable,
        },
    )


def log_state_change(
    logger: logging.Logger,
    old_state: str,
    new_state: str,
    trigger: str | None = None,
) -> None:
    """Log a sync state transition.

    Args:
        logger: Logger instance
        old_state: Previous state
        new_state: New state
        trigger: What triggered the change
    """
    extra = {
        "event": "state_change",
        "old_state": old_state,
        "new_state": new_state,
    }
    if trigger:
        extra["trigger"] = trigger
    logger.info("State changed", extra=extra)
