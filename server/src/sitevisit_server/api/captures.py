"""Capture API endpoints.

Submission, listing, editing and deletion of visit stop captures. The
work itself is done by CaptureIngestService.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from sitevisit_server.api.deps import get_ingest_service
from sitevisit_server.db.models import CaptureRecord, MediaAsset
from sitevisit_server.ingest.service import CaptureIngestService, CaptureSubmission

router = APIRouter(prefix="/api/captures", tags=["captures"])


# --- Schemas ---


class Location(BaseModel):
    lat: float
    lng: float


class CaptureCreateRequest(BaseModel):
    """Capture submission. Required fields are checked by the service."""

    visit_stop_id: str | None = None
    capture_type: str | None = None
    storage_locator: str | None = None
    caption: str | None = None
    transcript: str | None = None
    sentiment: str | None = None
    location: Location | None = None
    captured_by: str = "sales"
    captured_at: datetime | None = None
    property_id: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


class CaptureCreateResponse(BaseModel):
    id: str
    media_asset_id: str | None
    created_at: datetime


class MediaSummary(BaseModel):
    id: str
    status: str
    file_type: str
    mime_type: str
    thumbnail_locator: str | None
    preview_locator: str | None


class CaptureDetail(BaseModel):
    id: str
    visit_stop_id: str
    capture_type: str
    caption: str | None
    transcript: str | None
    sentiment: str | None
    latitude: float | None
    longitude: float | None
    captured_by: str
    captured_at: datetime
    created_at: datetime
    media_asset_id: str | None
    media: MediaSummary | None = None

    @classmethod
    def from_records(
        cls, capture: CaptureRecord, media: MediaAsset | None = None
    ) -> "CaptureDetail":
        return cls(
            id=capture.id,
            visit_stop_id=capture.visit_stop_id,
            capture_type=capture.capture_type,
            caption=capture.caption,
            transcript=capture.transcript,
            sentiment=capture.sentiment,
            latitude=capture.latitude,
            longitude=capture.longitude,
            captured_by=capture.captured_by,
            captured_at=capture.captured_at,
            created_at=capture.created_at,
            media_asset_id=capture.media_asset_id,
            media=(
                MediaSummary(
                    id=media.id,
                    status=media.status,
                    file_type=media.file_type,
                    mime_type=media.mime_type,
                    thumbnail_locator=media.thumbnail_locator,
                    preview_locator=media.preview_locator,
                )
                if media
                else None
            ),
        )


class CaptureUpdateRequest(BaseModel):
    caption: str | None = None
    transcript: str | None = None
    sentiment: str | None = None


# --- Endpoints ---


@router.post("", response_model=CaptureCreateResponse, status_code=201)
async def create_capture(
    body: CaptureCreateRequest,
    service: CaptureIngestService = Depends(get_ingest_service),
) -> CaptureCreateResponse:
    """Submit a capture for a visit stop.

    Photos and voice notes reference bytes previously sent to
    ``POST /api/uploads``; their media asset is created and queued for
    processing.
    """
    result = await service.create(
        CaptureSubmission(
            visit_stop_id=body.visit_stop_id,
            capture_type=body.capture_type,
            storage_locator=body.storage_locator,
            caption=body.caption,
            transcript=body.transcript,
            sentiment=body.sentiment,
            latitude=body.location.lat if body.location else None,
            longitude=body.location.lng if body.location else None,
            captured_by=body.captured_by,
            captured_at=body.captured_at,
            property_id=body.property_id,
            file_name=body.file_name,
            file_type=body.file_type,
            mime_type=body.mime_type,
            file_size=body.file_size,
        )
    )
    return CaptureCreateResponse(
        id=result.capture_id,
        media_asset_id=result.media_asset_id,
        created_at=result.created_at,
    )


@router.get("", response_model=list[CaptureDetail])
async def list_captures(
    visit_stop_id: str = Query(..., min_length=1),
    service: CaptureIngestService = Depends(get_ingest_service),
) -> list[CaptureDetail]:
    """List captures of a visit stop, oldest first."""
    rows = await service.list_for_visit_stop(visit_stop_id)
    return [CaptureDetail.from_records(capture, media) for capture, media in rows]


@router.patch("/{capture_id}", response_model=CaptureDetail)
async def update_capture(
    capture_id: str,
    body: CaptureUpdateRequest,
    service: CaptureIngestService = Depends(get_ingest_service),
) -> CaptureDetail:
    """Edit caption, transcript or sentiment of a capture."""
    capture = await service.update(capture_id, body.model_dump(exclude_unset=True))
    return CaptureDetail.from_records(capture)


@router.delete("/{capture_id}", status_code=204)
async def delete_capture(
    capture_id: str,
    service: CaptureIngestService = Depends(get_ingest_service),
) -> None:
    """Delete a capture along with its media asset and files."""
    await service.delete(capture_id)
