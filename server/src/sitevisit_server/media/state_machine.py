"""Media asset state machine.

The only code that changes ``MediaAsset.status``. Every change goes through
the transition table below::

    uploading -> processing -> ready
                     |   ^
                     v   |
                    failed

``ready`` is terminal. Each transition touches one row and commits on its
own; there is no locking, so concurrent writers resolve last-writer-wins.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from sitevisit_server.db.models import MediaAsset
from sitevisit_server.errors import (
    InvalidTransitionError,
    NotFailedError,
    NotFoundError,
    OrphanCleanupWarning,
    SiteVisitError,
    ValidationError,
)
from sitevisit_server.logging import (
    get_logger,
    log_media_status_changed,
    log_orphan_cleanup,
)
from sitevisit_server.media.values import (
    Derivatives,
    FileType,
    MediaSource,
    MediaStatus,
    StatusSnapshot,
)

if TYPE_CHECKING:
    from sitevisit_server.processing.dispatcher import DispatchOutcome, ProcessingDispatcher
    from sitevisit_server.storage.filesystem import FileStorage

logger = get_logger(__name__)

TRANSITIONS: dict[MediaStatus, frozenset[MediaStatus]] = {
    MediaStatus.UPLOADING: frozenset({MediaStatus.PROCESSING}),
    MediaStatus.PROCESSING: frozenset({MediaStatus.READY, MediaStatus.FAILED}),
    MediaStatus.FAILED: frozenset({MediaStatus.PROCESSING}),
    MediaStatus.READY: frozenset(),
}

TransitionCallback = Callable[[str, MediaStatus | None, MediaStatus], None]


def _log_transition(asset_id: str, old: MediaStatus | None, new: MediaStatus) -> None:
    log_media_status_changed(logger, asset_id, old.value if old else None, new.value)


class MediaAssetStateMachine:
    """Drives media assets through their processing lifecycle.

    Bound to one database session. Every method re-reads the row so a change
    made by another session (a worker, the webhook) is always seen.

    Example:
        machine = MediaAssetStateMachine(session)
        asset = await machine.create(
            original_filename="lobby.jpg",
            file_type=FileType.IMAGE,
            mime_type="image/jpeg",
        )
        await machine.mark_stored(asset.id, "2026/10/19/ab12.jpg")
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._callbacks: list[TransitionCallback] = [_log_transition]

    def on_transition(self, callback: TransitionCallback) -> None:
        """Register a callback receiving ``(asset_id, old_status, new_status)``.

        ``old_status`` is None for newly created assets.
        """
        self._callbacks.append(callback)

    def _notify(self, asset_id: str, old: MediaStatus | None, new: MediaStatus) -> None:
        for callback in self._callbacks:
            try:
                callback(asset_id, old, new)
            except Exception:
                logger.exception("transition_callback_failed", media_asset_id=asset_id)

    # --- Reads ---

    async def get(self, asset_id: str) -> MediaAsset | None:
        return await self._session.get(MediaAsset, asset_id, populate_existing=True)

    async def require(self, asset_id: str) -> MediaAsset:
        asset = await self.get(asset_id)
        if asset is None:
            raise NotFoundError(f"Media {asset_id} not found")
        return asset

    async def status(self, asset_id: str) -> StatusSnapshot:
        """Current processing status of an asset."""
        asset = await self.require(asset_id)
        return StatusSnapshot(
            id=asset.id,
            status=MediaStatus(asset.status),
            processed_at=asset.processed_at,
            processing_error=asset.processing_error,
            thumbnail_locator=asset.thumbnail_locator,
        )

    # --- Transitions ---

    async def create(
        self,
        *,
        original_filename: str,
        file_type: FileType,
        mime_type: str,
        size_bytes: int = 0,
        storage_locator: str = "",
        property_id: str | None = None,
        source: MediaSource = MediaSource.UPLOAD,
    ) -> MediaAsset:
        """Create an asset in ``uploading`` and commit it."""
        asset = MediaAsset(
            property_id=property_id,
            original_filename=original_filename,
            file_type=FileType(file_type).value,
            mime_type=mime_type,
            size_bytes=size_bytes,
            storage_locator=storage_locator,
            status=MediaStatus.UPLOADING.value,
            source=MediaSource(source).value,
        )
        self._session.add(asset)
        await self._session.commit()
        self._notify(asset.id, None, MediaStatus.UPLOADING)
        return asset

    def _transition(self, asset: MediaAsset, target: MediaStatus) -> MediaStatus:
        """Validate and apply a status change; caller commits."""
        current = MediaStatus(asset.status)
        if target not in TRANSITIONS[current]:
            raise InvalidTransitionError(asset.id, current.value, target.value)
        asset.status = target.value
        return current

    async def mark_stored(self, asset_id: str, storage_locator: str | None = None) -> MediaAsset:
        """Original bytes are in storage: ``uploading -> processing``.

        Args:
            asset_id: Asset to advance
            storage_locator: Where the bytes were stored, if not set at creation

        Raises:
            ValidationError: If the asset would end up without a locator
        """
        asset = await self.require(asset_id)
        locator = storage_locator or asset.storage_locator
        if not locator:
            raise ValidationError("storage_locator is required to leave uploading")
        old = self._transition(asset, MediaStatus.PROCESSING)
        asset.storage_locator = locator
        await self._session.commit()
        self._notify(asset.id, old, MediaStatus.PROCESSING)
        return asset

    async def mark_ready(self, asset_id: str, derivatives: Derivatives | None = None) -> MediaAsset:
        """Processing finished: ``processing -> ready``."""
        derivatives = derivatives or Derivatives()
        asset = await self.require(asset_id)
        old = self._transition(asset, MediaStatus.READY)
        asset.thumbnail_locator = derivatives.thumbnail_locator
        asset.preview_locator = derivatives.preview_locator
        asset.extracted_text = derivatives.extracted_text
        if derivatives.width is not None:
            asset.width = derivatives.width
        if derivatives.height is not None:
            asset.height = derivatives.height
        if derivatives.page_count is not None:
            asset.page_count = derivatives.page_count
        asset.processing_error = None
        asset.processed_at = datetime.now(timezone.utc)
        await self._session.commit()
        self._notify(asset.id, old, MediaStatus.READY)
        return asset

    async def mark_failed(self, asset_id: str, error: str) -> MediaAsset:
        """Processing failed: ``processing -> failed``. Original bytes are kept."""
        asset = await self.require(asset_id)
        old = self._transition(asset, MediaStatus.FAILED)
        asset.processing_error = error or "Processing failed"
        await self._session.commit()
        self._notify(asset.id, old, MediaStatus.FAILED)
        return asset

    async def retry(self, asset_id: str, dispatcher: ProcessingDispatcher) -> DispatchOutcome:
        """Send a failed asset back to processing.

        Raises:
            NotFailedError: If the asset is not failed; nothing is changed
        """
        asset = await self.require(asset_id)
        if asset.status != MediaStatus.FAILED.value:
            raise NotFailedError(asset.id, asset.status)
        old = self._transition(asset, MediaStatus.PROCESSING)
        asset.processing_error = None
        await self._session.commit()
        self._notify(asset.id, old, MediaStatus.PROCESSING)
        return await dispatcher.dispatch(asset.id, FileType(asset.file_type))

    async def delete(self, asset_id: str, storage: FileStorage) -> None:
        """Delete the asset's files and row.

        Derivatives go first, then the original. A file that cannot be
        removed is logged and left behind; the row is deleted regardless.
        """
        asset = await self.require(asset_id)
        locators = [
            ("thumbnail", asset.thumbnail_locator),
            ("preview", asset.preview_locator),
            ("original", asset.storage_locator),
        ]
        for resource, locator in locators:
            if not locator:
                continue
            try:
                await storage.delete(locator)
            except (OSError, SiteVisitError) as e:
                log_orphan_cleanup(
                    logger, OrphanCleanupWarning(f"media {resource}", locator, str(e))
                )

        await self._session.delete(asset)
        await self._session.commit()
        logger.info("media_deleted", media_asset_id=asset_id)
