"""SQLAlchemy 2.0 ORM models for the site visit database schema."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sitevisit_server.db.base import Base


def _uuid() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VisitStop(Base):
    """One venue stop within a site visit.

    Rows are managed by the admin surface; this service reads them and
    hangs captures off them.
    """

    __tablename__ = "visit_stops"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    site_visit_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    venue_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Maintained by the engagement scorer
    engagement_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<VisitStop(id={self.id}, venue={self.venue_name})>"


class MediaAsset(Base):
    """Stored media file and its processing lifecycle.

    The original bytes live in file storage under ``storage_locator``;
    derivatives (thumbnail, preview) are written next to them by the
    processing workers. ``status`` only changes through
    MediaAssetStateMachine.
    """

    __tablename__ = "media_assets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    property_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(20), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Empty only while uploading
    storage_locator: Mapped[str] = mapped_column(String(500), default="", nullable=False)

    # uploading, processing, ready, failed
    status: Mapped[str] = mapped_column(String(20), default="uploading", nullable=False)
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Derivatives, populated on ready
    thumbnail_locator: Mapped[str | None] = mapped_column(String(500), nullable=True)
    preview_locator: Mapped[str | None] = mapped_column(String(500), nullable=True)
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # capture or upload
    source: Mapped[str] = mapped_column(String(20), default="upload", nullable=False)

    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_media_assets_status", "status"),
        Index("ix_media_assets_property_id", "property_id"),
    )

    def __repr__(self) -> str:
        return f"<MediaAsset(id={self.id}, type={self.file_type}, status={self.status})>"


class CaptureRecord(Base):
    """A photo, voice note, reaction or note recorded at a visit stop."""

    __tablename__ = "captures"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    visit_stop_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("visit_stops.id", ondelete="CASCADE"),
        nullable=False,
    )
    media_asset_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("media_assets.id", ondelete="SET NULL"),
        nullable=True,
    )

    # photo, voice_note, reaction, note
    capture_type: Mapped[str] = mapped_column(String(20), nullable=False)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    sentiment: Mapped[str | None] = mapped_column(String(50), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # sales or client
    captured_by: Mapped[str] = mapped_column(String(20), default="sales", nullable=False)

    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_captures_visit_stop_captured_at", "visit_stop_id", "captured_at"),
        Index("ix_captures_media_asset_id", "media_asset_id"),
    )

    def __repr__(self) -> str:
        return f"<CaptureRecord(id={self.id}, stop={self.visit_stop_id}, type={self.capture_type})>"
