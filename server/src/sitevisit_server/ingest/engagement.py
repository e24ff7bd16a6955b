"""Engagement scoring notifications.

The scorer lives outside this service. We only tell it which visit stop
changed; whether scoring works or not never affects the capture itself.
"""

import asyncio
from typing import Protocol

import httpx

from sitevisit_server.logging import get_logger

logger = get_logger(__name__)

# Keeps fire-and-forget tasks referenced until they finish
_background_tasks: set[asyncio.Task] = set()


class EngagementScorer(Protocol):
    async def score(self, visit_stop_id: str) -> None: ...


class NoopEngagementScorer:
    """Used when no scorer endpoint is configured."""

    async def score(self, visit_stop_id: str) -> None:
        return None


class HttpEngagementScorer:
    """Posts ``{"visit_stop_id": ...}`` to the configured scorer endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def score(self, visit_stop_id: str) -> None:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout), transport=self._transport
        ) as client:
            response = await client.post(self.url, json={"visit_stop_id": visit_stop_id})
            response.raise_for_status()


async def _score_safely(scorer: EngagementScorer, visit_stop_id: str) -> None:
    try:
        await scorer.score(visit_stop_id)
    except Exception as e:
        logger.warning("engagement_score_failed", visit_stop_id=visit_stop_id, error=str(e))
    else:
        logger.debug("engagement_score_requested", visit_stop_id=visit_stop_id)


def schedule_scoring(scorer: EngagementScorer, visit_stop_id: str) -> asyncio.Task:
    """Run scoring in the background of the current event loop."""
    task = asyncio.create_task(_score_safely(scorer, visit_stop_id))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def wait_for_pending_scoring(timeout: float = 5.0) -> None:
    """Give in-flight scoring requests a chance to finish (used on shutdown)."""
    if not _background_tasks:
        return
    await asyncio.wait(set(_background_tasks), timeout=timeout)
