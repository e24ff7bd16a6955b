"""ARQ task definitions for media processing.

Each task is one attempt: it either marks the asset ready or failed. A
task that finds its asset no longer in ``processing`` (deleted, already
finished, or retried meanwhile) leaves it alone.
"""

from collections.abc import Awaitable, Callable

from sitevisit_server.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermanentProcessingError,
)
from sitevisit_server.logging import get_logger
from sitevisit_server.media.state_machine import MediaAssetStateMachine
from sitevisit_server.media.values import Derivatives, MediaStatus
from sitevisit_server.processing.derivatives import (
    build_image_derivatives,
    build_pdf_derivatives,
)
from sitevisit_server.storage.filesystem import FileStorage

logger = get_logger(__name__)

Builder = Callable[[FileStorage, str, bytes], Awaitable[Derivatives]]


async def _process(ctx: dict, media_asset_id: str, builder: Builder) -> dict:
    storage: FileStorage = ctx["storage"]
    async with ctx["session_factory"]() as session:
        machine = MediaAssetStateMachine(session)
        asset = await machine.get(media_asset_id)
        if asset is None:
            logger.info("processing_skipped", media_asset_id=media_asset_id, reason="missing")
            return {"status": "skipped", "reason": "missing"}
        if asset.status != MediaStatus.PROCESSING.value:
            logger.info(
                "processing_skipped",
                media_asset_id=media_asset_id,
                reason="not_processing",
                status=asset.status,
            )
            return {"status": "skipped", "reason": "not_processing"}

        try:
            data = await storage.retrieve(asset.storage_locator)
            derivatives = await builder(storage, media_asset_id, data)
        except FileNotFoundError:
            error = "Original file is missing from storage"
        except PermanentProcessingError as e:
            error = e.message
        except Exception as e:
            logger.exception("processing_error", media_asset_id=media_asset_id)
            error = f"Processing failed: {e}"
        else:
            error = None

        try:
            if error is None:
                await machine.mark_ready(media_asset_id, derivatives)
            else:
                await machine.mark_failed(media_asset_id, error)
        except (InvalidTransitionError, NotFoundError) as e:
            # Asset was deleted or moved on while we worked
            logger.warning(
                "processing_result_discarded", media_asset_id=media_asset_id, error=e.message
            )
            return {"status": "discarded"}

    if error is None:
        logger.info("processing_completed", media_asset_id=media_asset_id)
        return {"status": "ready"}
    logger.warning("processing_failed", media_asset_id=media_asset_id, error=error)
    return {"status": "failed", "error": error}


async def process_image(ctx: dict, media_asset_id: str) -> dict:
    """ARQ task: build thumbnail and preview for an image asset."""
    return await _process(ctx, media_asset_id, build_image_derivatives)


async def process_pdf(ctx: dict, media_asset_id: str) -> dict:
    """ARQ task: extract page count and text from a PDF asset."""
    return await _process(ctx, media_asset_id, build_pdf_derivatives)
