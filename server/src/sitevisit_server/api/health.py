"""Health check API endpoints.

Provides endpoints for monitoring server health and readiness. Clients
use ``/health/ready`` as their connectivity check before syncing.
"""

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from sitevisit_server import __version__
from sitevisit_server.api.deps import get_storage
from sitevisit_server.db.session import get_db
from sitevisit_server.errors import TransientIOError
from sitevisit_server.storage.filesystem import FileStorage

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


# --- Schemas ---


class HealthResponse(BaseModel):
    """Health check response with component status."""

    status: str = "healthy"
    version: str
    database: str = "unknown"
    storage: str = "unknown"
    task_queue: str = "unknown"


# --- Endpoints ---


@router.get("/", response_model=HealthResponse)
async def health_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> HealthResponse:
    """Check server health and component status.

    Always returns 200 with component status in body.
    Monitoring systems should check the body for unhealthy components.
    """
    overall_status = "healthy"

    try:
        await db.execute(text("SELECT 1"))
        database_status = "healthy"
    except Exception as e:
        logger.warning("database_health_check_failed", error=str(e))
        database_status = "unhealthy"
        overall_status = "degraded"

    if storage.is_writable():
        storage_status = "healthy"
    else:
        storage_status = "unavailable"
        overall_status = "degraded"

    # Captures are still accepted without the queue; processing waits for retry
    if getattr(request.app.state, "arq_pool", None) is not None:
        task_queue_status = "connected"
    else:
        task_queue_status = "unavailable"
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        database=database_status,
        storage=storage_status,
        task_queue=task_queue_status,
    )


@router.get("/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> dict:
    """Check if server is ready to accept captures.

    Returns 200 only if the database and storage are usable, 503 otherwise.
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("readiness_database_failed", error=str(e))
        raise TransientIOError("Database not ready") from e

    if not storage.is_writable():
        logger.warning("readiness_storage_failed", path=str(storage.base_path))
        raise TransientIOError("Storage not writable")

    return {"ready": True}
