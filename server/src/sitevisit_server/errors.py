"""Error taxonomy for the site visit server.

Every error carries an HTTP status and a stable ``error_type`` so API
callers can branch on it. ``render_error`` turns them into the JSON body
``{"error": {"type": ..., "message": ...}}``.
"""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sitevisit_server.logging import get_logger, log_api_error

logger = get_logger(__name__)


class SiteVisitError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SiteVisitError):
    """Missing or invalid input. Never worth retrying unchanged."""

    status_code = 400
    error_type = "validation_error"


class NotFoundError(SiteVisitError):
    status_code = 404
    error_type = "not_found"


class UnauthorizedError(SiteVisitError):
    status_code = 401
    error_type = "unauthorized"


class InvalidTransitionError(SiteVisitError):
    """A media asset status change outside the transition table."""

    status_code = 409
    error_type = "invalid_transition"

    def __init__(self, asset_id: str, current: str, target: str) -> None:
        super().__init__(f"Media {asset_id} cannot move from {current} to {target}")
        self.asset_id = asset_id
        self.current = current
        self.target = target


class NotFailedError(SiteVisitError):
    """Retry requested for an asset that is not in the failed state."""

    status_code = 409
    error_type = "not_failed"

    def __init__(self, asset_id: str, current: str) -> None:
        super().__init__("Media is not in failed state")
        self.asset_id = asset_id
        self.current = current


class TransientIOError(SiteVisitError):
    """Storage, queue or network temporarily unavailable."""

    status_code = 503
    error_type = "transient_io"


class PermanentProcessingError(SiteVisitError):
    """Input that no amount of reprocessing will fix (corrupt or unreadable)."""

    status_code = 422
    error_type = "processing_failed"


class CaptureCreateError(SiteVisitError):
    """Capture creation failed after the partial work was undone."""

    status_code = 500
    error_type = "capture_create_failed"


class OrphanCleanupWarning(UserWarning):
    """Cleanup of a leftover row or file did not succeed.

    Logged, never raised to callers.
    """

    def __init__(self, resource: str, identifier: str, reason: str) -> None:
        super().__init__(f"Could not clean up {resource} {identifier}: {reason}")
        self.resource = resource
        self.identifier = identifier
        self.reason = reason


def render_error(error_type: str, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": message}},
    )


async def sitevisit_error_handler(request: Request, exc: SiteVisitError) -> JSONResponse:
    """FastAPI exception handler for domain errors."""
    if exc.status_code >= 500:
        log_api_error(logger, request.url.path, exc.error_type, exc.message)
    return render_error(exc.error_type, exc.message, exc.status_code)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request body/query validation failures as validation errors."""
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return render_error(ValidationError.error_type, details or "Invalid request", 400)
