"""Structured logging for the site visit server.

Uses structlog for contextual JSON logging with request tracking,
audit events, and FastAPI middleware integration.

Usage:
    from sitevisit_server.logging import setup_logging, get_logger

    setup_logging("INFO")
    log = get_logger("sitevisit_server.api")
    log.info("capture_created", capture_id="abc123", visit_stop_id="V1")
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from fastapi import Request, Response
    from starlette.middleware.base import RequestResponseEndpoint

    from sitevisit_server.errors import OrphanCleanupWarning


def setup_logging(level: str = "INFO") -> None:
    """Configure structlog with JSON rendering.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Route uvicorn and arq through the same formatting
    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access", "arq"]:
        named_logger = logging.getLogger(logger_name)
        named_logger.handlers.clear()
        named_logger.addHandler(handler)
        named_logger.propagate = False


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger with optional name.

    Args:
        name: Optional logger name (e.g., 'sitevisit_server.api')

    Returns:
        Bound structlog logger instance
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


class LoggingMiddleware:
    """Request logging and request ID tracking.

    Used as the dispatch function of a Starlette ``BaseHTTPMiddleware``.
    Binds ``request_id`` for every log line emitted while the request is
    handled, honouring an incoming ``X-Request-ID``.
    """

    def __init__(self, app: Any) -> None:
        self.app = app
        self.logger = get_logger("sitevisit_server.middleware")

    async def __call__(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        started = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as exc:
            self.logger.error(
                "request_failed",
                duration_ms=round((time.monotonic() - started) * 1000, 2),
                error=str(exc),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "method", "path")

        # Connectivity checks log at debug
        level = logging.DEBUG if request.url.path.startswith("/health") else logging.INFO
        self.logger.log(
            level,
            "request_completed",
            request_id=request_id,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response


# --- Audit Event Functions ---
# Typed interfaces for server audit events. Captions and transcripts are
# never logged, only identifiers.


def log_capture_created(
    logger: structlog.stdlib.BoundLogger,
    capture_id: str,
    visit_stop_id: str,
    capture_type: str,
    media_asset_id: str | None,
) -> None:
    """Log a capture persisted for a visit stop.

    Args:
        logger: Logger instance
        capture_id: Server capture id
        visit_stop_id: Owning visit stop
        capture_type: photo, voice_note, reaction or note
        media_asset_id: Linked media asset, if any
    """
    logger.info(
        "capture_created",
        capture_id=capture_id,
        visit_stop_id=visit_stop_id,
        capture_type=capture_type,
        media_asset_id=media_asset_id,
    )


def log_media_status_changed(
    logger: structlog.stdlib.BoundLogger,
    media_asset_id: str,
    old_status: str | None,
    new_status: str,
) -> None:
    """Log a media asset status transition.

    Args:
        logger: Logger instance
        media_asset_id: Media asset id
        old_status: Previous status (None on creation)
        new_status: New status
    """
    logger.info(
        "media_status_changed",
        media_asset_id=media_asset_id,
        old_status=old_status,
        new_status=new_status,
    )


def log_dispatch(
    logger: structlog.stdlib.BoundLogger,
    media_asset_id: str,
    file_type: str,
    outcome: str,
    error: str | None = None,
) -> None:
    """Log the result of handing an asset to processing.

    Enqueue failures are logged as warnings since the asset is left in
    processing until someone retries it.
    """
    if error:
        logger.warning(
            "dispatch_enqueue_failed",
            media_asset_id=media_asset_id,
            file_type=file_type,
            outcome=outcome,
            error=error,
        )
    else:
        logger.info(
            "dispatch_completed",
            media_asset_id=media_asset_id,
            file_type=file_type,
            outcome=outcome,
        )


def log_orphan_cleanup(
    logger: structlog.stdlib.BoundLogger,
    warning: OrphanCleanupWarning,
) -> None:
    """Log a cleanup step that left something behind.

    Args:
        logger: Logger instance
        warning: Description of the leftover resource
    """
    logger.warning(
        "orphan_cleanup_warning",
        resource=warning.resource,
        identifier=warning.identifier,
        reason=warning.reason,
    )


def log_api_error(
    logger: structlog.stdlib.BoundLogger,
    endpoint: str,
    error_type: str,
    message: str,
) -> None:
    """Log an API error.

    Args:
        logger: Logger instance
        endpoint: API endpoint that errored
        error_type: Stable error type (e.g., "validation_error")
        message: Error message (sanitized - no capture content)
    """
    logger.error(
        "api_error",
        endpoint=endpoint,
        error_type=error_type,
        message=message,
    )
