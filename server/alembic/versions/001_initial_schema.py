"""Initial schema with visit stops, media assets and captures.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create visit_stops, media_assets and captures tables."""
    op.create_table(
        "visit_stops",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("site_visit_id", sa.String(36), nullable=True),
        sa.Column("venue_name", sa.String(255), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("engagement_score", sa.Float, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "media_assets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("property_id", sa.String(36), nullable=True),
        sa.Column("original_filename", sa.String(255), nullable=False),
        sa.Column("file_type", sa.String(20), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("size_bytes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("storage_locator", sa.String(500), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="uploading"),
        sa.Column("processing_error", sa.Text, nullable=True),
        sa.Column("thumbnail_locator", sa.String(500), nullable=True),
        sa.Column("preview_locator", sa.String(500), nullable=True),
        sa.Column("extracted_text", sa.Text, nullable=True),
        sa.Column("width", sa.Integer, nullable=True),
        sa.Column("height", sa.Integer, nullable=True),
        sa.Column("page_count", sa.Integer, nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="upload"),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_media_assets_status", "media_assets", ["status"])
    op.create_index("ix_media_assets_property_id", "media_assets", ["property_id"])

    op.create_table(
        "captures",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "visit_stop_id",
            sa.String(36),
            sa.ForeignKey("visit_stops.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "media_asset_id",
            sa.String(36),
            sa.ForeignKey("media_assets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("capture_type", sa.String(20), nullable=False),
        sa.Column("caption", sa.Text, nullable=True),
        sa.Column("transcript", sa.Text, nullable=True),
        sa.Column("sentiment", sa.String(50), nullable=True),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("captured_by", sa.String(20), nullable=False, server_default="sales"),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # Captures are always read per visit stop in time order
    op.create_index(
        "ix_captures_visit_stop_captured_at", "captures", ["visit_stop_id", "captured_at"]
    )
    op.create_index("ix_captures_media_asset_id", "captures", ["media_asset_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("ix_captures_media_asset_id", table_name="captures")
    op.drop_index("ix_captures_visit_stop_captured_at", table_name="captures")
    op.drop_table("captures")
    op.drop_index("ix_media_assets_property_id", table_name="media_assets")
    op.drop_index("ix_media_assets_status", table_name="media_assets")
    op.drop_table("media_assets")
    op.drop_table("visit_stops")
