"""Upload endpoint for raw capture bytes.

Clients upload a captured file here first and reference the returned
locator when submitting the capture.
"""

import structlog
from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel

from sitevisit_server.api.deps import get_storage
from sitevisit_server.config import get_settings
from sitevisit_server.errors import ValidationError
from sitevisit_server.storage.filesystem import FileStorage

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


class UploadResponse(BaseModel):
    storage_locator: str
    size_bytes: int
    mime_type: str


@router.post("", response_model=UploadResponse, status_code=201)
async def upload_bytes(
    file: UploadFile = File(...),
    storage: FileStorage = Depends(get_storage),
) -> UploadResponse:
    """Store uploaded bytes and return their storage locator."""
    max_bytes = get_settings().max_upload_bytes
    data = await file.read()
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > max_bytes:
        raise ValidationError(
            f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB"
        )

    locator = await storage.store_upload(data, file.filename)
    logger.info("upload_stored", storage_locator=locator, size_bytes=len(data))

    return UploadResponse(
        storage_locator=locator,
        size_bytes=len(data),
        mime_type=file.content_type or "application/octet-stream",
    )
