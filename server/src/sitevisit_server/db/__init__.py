"""Database module exports."""

from sitevisit_server.db.base import Base
from sitevisit_server.db.models import CaptureRecord, MediaAsset, VisitStop
from sitevisit_server.db.session import AsyncSessionLocal, get_db, make_session_factory

__all__ = [
    "AsyncSessionLocal",
    "Base",
    "CaptureRecord",
    "MediaAsset",
    "VisitStop",
    "get_db",
    "make_session_factory",
]
