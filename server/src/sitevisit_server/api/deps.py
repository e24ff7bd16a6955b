"""Shared FastAPI dependencies."""

import hmac
from functools import lru_cache

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sitevisit_server.config import get_settings
from sitevisit_server.db.session import get_db
from sitevisit_server.errors import UnauthorizedError
from sitevisit_server.ingest.engagement import (
    EngagementScorer,
    HttpEngagementScorer,
    NoopEngagementScorer,
)
from sitevisit_server.ingest.service import CaptureIngestService
from sitevisit_server.media.state_machine import MediaAssetStateMachine
from sitevisit_server.processing.dispatcher import ArqTaskQueue, ProcessingDispatcher, TaskQueue
from sitevisit_server.storage.filesystem import FileStorage


@lru_cache
def get_storage() -> FileStorage:
    """Get cached FileStorage instance configured from settings.

    Storage is initialized once and reused for all requests.
    """
    settings = get_settings()
    return FileStorage(base_path=settings.storage_path)


@lru_cache
def get_engagement_scorer() -> EngagementScorer:
    settings = get_settings()
    if not settings.engagement_scorer_url:
        return NoopEngagementScorer()
    return HttpEngagementScorer(
        settings.engagement_scorer_url,
        timeout=settings.engagement_scorer_timeout,
    )


def get_task_queue(request: Request) -> TaskQueue:
    """Task queue over the app's ARQ pool (absent if Redis was down at startup)."""
    pool = getattr(request.app.state, "arq_pool", None)
    return ArqTaskQueue(pool, timeout=get_settings().dispatch_timeout)


def get_state_machine(db: AsyncSession = Depends(get_db)) -> MediaAssetStateMachine:
    return MediaAssetStateMachine(db)


def get_dispatcher(
    task_queue: TaskQueue = Depends(get_task_queue),
    machine: MediaAssetStateMachine = Depends(get_state_machine),
) -> ProcessingDispatcher:
    return ProcessingDispatcher(task_queue, machine)


def get_ingest_service(
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    task_queue: TaskQueue = Depends(get_task_queue),
    scorer: EngagementScorer = Depends(get_engagement_scorer),
) -> CaptureIngestService:
    return CaptureIngestService(db, storage, task_queue, scorer)


def verify_webhook_secret(authorization: str | None = Header(None)) -> None:
    """Require ``Authorization: Bearer <webhook_secret>``.

    With no secret configured the webhook rejects every call.
    """
    secret = get_settings().webhook_secret
    if not secret or not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Unauthorized")
    token = authorization.removeprefix("Bearer ")
    if not hmac.compare_digest(token.encode(), secret.encode()):
        raise UnauthorizedError("Unauthorized")
