"""Capture ingest: persists submitted captures and their media assets.

Creating a capture with a photo or voice note is two commits: first the
media asset (in ``uploading``), then the capture row pointing at it. If
the second commit fails the asset row is removed again so no asset is
left without its capture. The stored bytes are kept; the client still
holds the capture and will send it again.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sitevisit_server.db.models import CaptureRecord, MediaAsset
from sitevisit_server.errors import (
    CaptureCreateError,
    NotFoundError,
    OrphanCleanupWarning,
    ValidationError,
)
from sitevisit_server.ingest.engagement import (
    EngagementScorer,
    NoopEngagementScorer,
    schedule_scoring,
)
from sitevisit_server.logging import get_logger, log_capture_created, log_orphan_cleanup
from sitevisit_server.media.state_machine import MediaAssetStateMachine
from sitevisit_server.media.values import (
    FileType,
    MediaSource,
    file_type_for_mime,
    is_allowed_mime,
)
from sitevisit_server.processing.dispatcher import ProcessingDispatcher, TaskQueue
from sitevisit_server.storage.filesystem import FileStorage

logger = get_logger(__name__)


class CaptureType(str, Enum):
    PHOTO = "photo"
    VOICE_NOTE = "voice_note"
    REACTION = "reaction"
    NOTE = "note"


class CapturedBy(str, Enum):
    SALES = "sales"
    CLIENT = "client"


# Capture types backed by a stored file, with their default classification
ASSET_DEFAULTS: dict[CaptureType, tuple[FileType, str]] = {
    CaptureType.PHOTO: (FileType.IMAGE, "image/jpeg"),
    CaptureType.VOICE_NOTE: (FileType.AUDIO, "audio/webm"),
}

EDITABLE_FIELDS = frozenset({"caption", "transcript", "sentiment"})


@dataclass
class CaptureSubmission:
    """A capture as submitted by a client."""

    visit_stop_id: str | None
    capture_type: str | None
    storage_locator: str | None = None
    caption: str | None = None
    transcript: str | None = None
    sentiment: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    captured_by: str = CapturedBy.SALES.value
    captured_at: datetime | None = None
    # Optional hints describing the stored file
    property_id: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


@dataclass(frozen=True)
class IngestResult:
    capture_id: str
    media_asset_id: str | None
    created_at: datetime


class CaptureIngestService:
    """Creates, lists, edits and deletes captures of visit stops.

    Example:
        service = CaptureIngestService(session, storage, task_queue, scorer)
        result = await service.create(CaptureSubmission("V1", "note", caption="Nice"))
    """

    def __init__(
        self,
        session: AsyncSession,
        storage: FileStorage,
        task_queue: TaskQueue,
        scorer: EngagementScorer | None = None,
    ) -> None:
        self._session = session
        self._storage = storage
        self._scorer = scorer or NoopEngagementScorer()
        self.machine = MediaAssetStateMachine(session)
        self.dispatcher = ProcessingDispatcher(task_queue, self.machine)

    @staticmethod
    def _validate(submission: CaptureSubmission) -> tuple[CaptureType, CapturedBy]:
        if not submission.visit_stop_id:
            raise ValidationError("visit_stop_id is required")
        if not submission.capture_type:
            raise ValidationError("capture_type is required")
        try:
            capture_type = CaptureType(submission.capture_type)
        except ValueError:
            raise ValidationError(f"Unknown capture_type: {submission.capture_type}") from None
        try:
            captured_by = CapturedBy(submission.captured_by or CapturedBy.SALES.value)
        except ValueError:
            raise ValidationError(f"Unknown captured_by: {submission.captured_by}") from None
        return capture_type, captured_by

    async def _create_asset(
        self, capture_type: CaptureType, submission: CaptureSubmission
    ) -> MediaAsset | None:
        """Create the uploading asset for a stored capture file, if any."""
        locator = submission.storage_locator
        if capture_type not in ASSET_DEFAULTS or not locator:
            return None

        if not await self._storage.exists(locator):
            raise ValidationError(f"No stored file at {locator}")

        default_type, default_mime = ASSET_DEFAULTS[capture_type]
        if submission.file_type:
            try:
                file_type = FileType(submission.file_type)
            except ValueError:
                raise ValidationError(f"Unknown file_type: {submission.file_type}") from None
        else:
            file_type = default_type
            # Known files without derivatives, such as SVG, pass through
            if submission.mime_type and is_allowed_mime(submission.mime_type):
                derived = file_type_for_mime(submission.mime_type)
                if derived == FileType.DOCUMENT:
                    file_type = derived
        mime_type = submission.mime_type or default_mime
        size_bytes = submission.file_size or await self._storage.size(locator)

        return await self.machine.create(
            original_filename=submission.file_name or PurePosixPath(locator).name,
            file_type=file_type,
            mime_type=mime_type,
            size_bytes=size_bytes,
            storage_locator=locator,
            property_id=submission.property_id,
            source=MediaSource.CAPTURE,
        )

    async def _discard_asset(self, asset_id: str) -> None:
        """Remove an asset row whose capture could not be created."""
        try:
            asset = await self._session.get(MediaAsset, asset_id, populate_existing=True)
            if asset is not None:
                await self._session.delete(asset)
                await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            log_orphan_cleanup(logger, OrphanCleanupWarning("media asset row", asset_id, str(e)))

    async def create(self, submission: CaptureSubmission) -> IngestResult:
        """Persist a capture, creating and dispatching its media asset.

        Raises:
            ValidationError: Missing or invalid fields, or unknown locator
            CaptureCreateError: The capture row could not be written
        """
        capture_type, captured_by = self._validate(submission)
        asset = await self._create_asset(capture_type, submission)
        asset_id = asset.id if asset else None

        capture = CaptureRecord(
            visit_stop_id=submission.visit_stop_id,
            media_asset_id=asset_id,
            capture_type=capture_type.value,
            caption=submission.caption,
            transcript=submission.transcript,
            sentiment=submission.sentiment,
            latitude=submission.latitude,
            longitude=submission.longitude,
            captured_by=captured_by.value,
            captured_at=submission.captured_at or datetime.now(timezone.utc),
        )
        try:
            self._session.add(capture)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            if asset_id is not None:
                await self._discard_asset(asset_id)
            logger.error(
                "capture_create_failed",
                visit_stop_id=submission.visit_stop_id,
                media_asset_id=asset_id,
                error=str(e),
            )
            raise CaptureCreateError("Failed to create capture") from e

        log_capture_created(
            logger,
            capture.id,
            capture.visit_stop_id,
            capture.capture_type,
            capture.media_asset_id,
        )

        if asset is not None:
            await self.machine.mark_stored(asset.id)
            await self.dispatcher.dispatch(asset.id, asset.file_type)

        schedule_scoring(self._scorer, capture.visit_stop_id)

        return IngestResult(
            capture_id=capture.id,
            media_asset_id=capture.media_asset_id,
            created_at=capture.created_at,
        )

    async def list_for_visit_stop(
        self, visit_stop_id: str
    ) -> list[tuple[CaptureRecord, MediaAsset | None]]:
        """Captures of a visit stop with their media, oldest first."""
        result = await self._session.execute(
            select(CaptureRecord, MediaAsset)
            .outerjoin(MediaAsset, CaptureRecord.media_asset_id == MediaAsset.id)
            .where(CaptureRecord.visit_stop_id == visit_stop_id)
            .order_by(CaptureRecord.captured_at.asc(), CaptureRecord.created_at.asc())
        )
        return [(row[0], row[1]) for row in result.all()]

    async def _require(self, capture_id: str) -> CaptureRecord:
        capture = await self._session.get(CaptureRecord, capture_id, populate_existing=True)
        if capture is None:
            raise NotFoundError(f"Capture {capture_id} not found")
        return capture

    async def update(self, capture_id: str, changes: dict[str, str | None]) -> CaptureRecord:
        """Edit caption, transcript or sentiment.

        Args:
            capture_id: Capture to edit
            changes: Subset of caption, transcript and sentiment

        Raises:
            ValidationError: If no editable field is given
            NotFoundError: If the capture does not exist
        """
        fields = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        if not fields:
            raise ValidationError("No fields to update")

        capture = await self._require(capture_id)
        for name, value in fields.items():
            setattr(capture, name, value)
        await self._session.commit()
        logger.info("capture_updated", capture_id=capture_id, fields=sorted(fields))
        return capture

    async def delete(self, capture_id: str) -> None:
        """Delete a capture together with its media asset and files.

        Both rows go in the same commit, so a failure leaves the capture
        and its asset in place together.
        """
        capture = await self._require(capture_id)
        visit_stop_id = capture.visit_stop_id
        media_asset_id = capture.media_asset_id

        try:
            await self._session.delete(capture)
            if media_asset_id and await self.machine.get(media_asset_id) is not None:
                # Commits the pending capture delete along with the asset row
                await self.machine.delete(media_asset_id, self._storage)
            else:
                await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("capture_deleted", capture_id=capture_id, media_asset_id=media_asset_id)
        schedule_scoring(self._scorer, visit_stop_id)
