"""Media library API endpoints.

Upload, inspect, retry and delete media assets, plus the callback used by
external processing workers.
"""

from datetime import datetime
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from sitevisit_server.api.deps import (
    get_dispatcher,
    get_state_machine,
    get_storage,
    verify_webhook_secret,
)
from sitevisit_server.config import get_settings
from sitevisit_server.db.models import MediaAsset
from sitevisit_server.errors import SiteVisitError, ValidationError
from sitevisit_server.media.state_machine import MediaAssetStateMachine
from sitevisit_server.media.values import (
    Derivatives,
    MediaSource,
    file_type_for_mime,
    is_allowed_mime,
)
from sitevisit_server.processing.dispatcher import ProcessingDispatcher
from sitevisit_server.storage.filesystem import FileStorage

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/media", tags=["media"])


# --- Schemas ---


class MediaDetail(BaseModel):
    """Full media asset record."""

    id: str
    property_id: str | None
    original_filename: str
    file_type: str
    mime_type: str
    size_bytes: int
    storage_locator: str
    status: str
    processing_error: str | None
    thumbnail_locator: str | None
    preview_locator: str | None
    extracted_text: str | None
    width: int | None
    height: int | None
    page_count: int | None
    source: str
    processed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StatusResponse(BaseModel):
    id: str
    status: str
    processed_at: datetime | None
    processing_error: str | None
    thumbnail_locator: str | None


class RetryResponse(BaseModel):
    id: str
    status: str
    dispatch: str


class DerivativesPayload(BaseModel):
    thumbnail_locator: str | None = None
    preview_locator: str | None = None
    extracted_text: str | None = None
    width: int | None = None
    height: int | None = None
    page_count: int | None = None


class WebhookPayload(BaseModel):
    """Result reported by an external processing worker."""

    media_asset_id: str
    status: Literal["ready", "failed"]
    error: str | None = None
    derivatives: DerivativesPayload | None = None


def _status_response(asset: MediaAsset) -> StatusResponse:
    return StatusResponse(
        id=asset.id,
        status=asset.status,
        processed_at=asset.processed_at,
        processing_error=asset.processing_error,
        thumbnail_locator=asset.thumbnail_locator,
    )


# --- Endpoints ---


@router.post("/upload", response_model=MediaDetail, status_code=201)
async def upload_media(
    file: UploadFile = File(...),
    property_id: str | None = Form(None),
    storage: FileStorage = Depends(get_storage),
    machine: MediaAssetStateMachine = Depends(get_state_machine),
    dispatcher: ProcessingDispatcher = Depends(get_dispatcher),
) -> MediaAsset:
    """Upload a file to the media library.

    The asset is recorded as uploading, its bytes are stored, and it is
    handed to processing. A processing queue that is unavailable does not
    fail the upload; the asset simply stays in processing.
    """
    mime_type = file.content_type or ""
    if not is_allowed_mime(mime_type):
        raise ValidationError(f"File type {mime_type or 'unknown'} is not allowed")

    max_bytes = get_settings().max_upload_bytes
    data = await file.read()
    if len(data) > max_bytes:
        raise ValidationError(
            f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB"
        )

    log = logger.bind(filename=file.filename, mime_type=mime_type, size_bytes=len(data))

    asset = await machine.create(
        original_filename=file.filename or "upload",
        file_type=file_type_for_mime(mime_type),
        mime_type=mime_type,
        size_bytes=len(data),
        property_id=property_id,
        source=MediaSource.UPLOAD,
    )
    asset_id = asset.id

    try:
        locator = await storage.store_upload(data, file.filename)
    except SiteVisitError:
        log.error("media_upload_store_failed", media_asset_id=asset_id)
        await machine.delete(asset_id, storage)
        raise

    asset = await machine.mark_stored(asset_id, locator)
    await dispatcher.dispatch(asset.id, asset.file_type)
    log.info("media_uploaded", media_asset_id=asset.id)

    return await machine.require(asset_id)


@router.post("/webhook", response_model=StatusResponse, dependencies=[Depends(verify_webhook_secret)])
async def processing_webhook(
    payload: WebhookPayload,
    machine: MediaAssetStateMachine = Depends(get_state_machine),
) -> StatusResponse:
    """Record the result reported by an external processing worker."""
    if payload.status == "ready":
        derivatives = Derivatives(**(payload.derivatives.model_dump() if payload.derivatives else {}))
        asset = await machine.mark_ready(payload.media_asset_id, derivatives)
    else:
        asset = await machine.mark_failed(payload.media_asset_id, payload.error or "Processing failed")

    logger.info("processing_webhook", media_asset_id=asset.id, status=asset.status)
    return _status_response(asset)


@router.get("/{media_id}", response_model=MediaDetail)
async def get_media(
    media_id: str,
    machine: MediaAssetStateMachine = Depends(get_state_machine),
) -> MediaAsset:
    """Get a media asset."""
    return await machine.require(media_id)


@router.get("/{media_id}/status", response_model=StatusResponse)
async def get_media_status(
    media_id: str,
    machine: MediaAssetStateMachine = Depends(get_state_machine),
) -> StatusResponse:
    """Poll the processing status of a media asset."""
    snapshot = await machine.status(media_id)
    return StatusResponse(**snapshot.to_dict())


@router.post("/{media_id}/retry", response_model=RetryResponse)
async def retry_media(
    media_id: str,
    machine: MediaAssetStateMachine = Depends(get_state_machine),
    dispatcher: ProcessingDispatcher = Depends(get_dispatcher),
) -> RetryResponse:
    """Send a failed media asset back to processing.

    Answers 409 with error type ``not_failed`` for any other status.
    """
    outcome = await machine.retry(media_id, dispatcher)
    asset = await machine.require(media_id)
    return RetryResponse(id=asset.id, status=asset.status, dispatch=outcome.value)


@router.delete("/{media_id}", status_code=204)
async def delete_media(
    media_id: str,
    machine: MediaAssetStateMachine = Depends(get_state_machine),
    storage: FileStorage = Depends(get_storage),
) -> None:
    """Delete a media asset and its files."""
    await machine.delete(media_id, storage)
