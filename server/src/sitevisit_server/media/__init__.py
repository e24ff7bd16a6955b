"""Media asset lifecycle."""

from sitevisit_server.media.state_machine import TRANSITIONS, MediaAssetStateMachine
from sitevisit_server.media.values import (
    Derivatives,
    FileType,
    MediaSource,
    MediaStatus,
    StatusSnapshot,
)

__all__ = [
    "Derivatives",
    "FileType",
    "MediaAssetStateMachine",
    "MediaSource",
    "MediaStatus",
    "StatusSnapshot",
    "TRANSITIONS",
]
