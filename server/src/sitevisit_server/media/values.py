"""Media asset enums and value objects."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class FileType(str, Enum):
    """Closed set of media kinds; each one has a processing route."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    PDF = "pdf"
    DOCUMENT = "document"


class MediaStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class MediaSource(str, Enum):
    """Where an asset came from."""

    CAPTURE = "capture"
    UPLOAD = "upload"


ALLOWED_MIME_TYPES: dict[FileType, frozenset[str]] = {
    FileType.IMAGE: frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"}),
    FileType.VIDEO: frozenset({"video/mp4", "video/quicktime", "video/webm"}),
    FileType.AUDIO: frozenset({"audio/mpeg", "audio/wav", "audio/webm", "audio/ogg"}),
    FileType.PDF: frozenset({"application/pdf"}),
    FileType.DOCUMENT: frozenset(
        {
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "application/vnd.ms-excel",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            # Vector images have no raster derivatives
            "image/svg+xml",
        }
    ),
}


def file_type_for_mime(mime_type: str) -> FileType:
    """Classify a MIME type; anything unrecognised counts as a document."""
    for file_type, allowed in ALLOWED_MIME_TYPES.items():
        if mime_type in allowed:
            return file_type
    if mime_type.startswith("image/"):
        return FileType.IMAGE
    if mime_type.startswith("video/"):
        return FileType.VIDEO
    if mime_type.startswith("audio/"):
        return FileType.AUDIO
    return FileType.DOCUMENT


def is_allowed_mime(mime_type: str) -> bool:
    return any(mime_type in allowed for allowed in ALLOWED_MIME_TYPES.values())


@dataclass(frozen=True)
class Derivatives:
    """Outputs of processing, recorded when an asset becomes ready."""

    thumbnail_locator: str | None = None
    preview_locator: str | None = None
    extracted_text: str | None = None
    width: int | None = None
    height: int | None = None
    page_count: int | None = None


@dataclass(frozen=True)
class StatusSnapshot:
    """What a client polls for while waiting on processing."""

    id: str
    status: MediaStatus
    processed_at: datetime | None
    processing_error: str | None
    thumbnail_locator: str | None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "processing_error": self.processing_error,
            "thumbnail_locator": self.thumbnail_locator,
        }
