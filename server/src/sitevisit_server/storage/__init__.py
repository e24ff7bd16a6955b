"""File storage for original media bytes and their derivatives."""

from sitevisit_server.storage.filesystem import FileStorage

__all__ = ["FileStorage"]
