"""Async filesystem storage for media bytes.

Provides date-partitioned storage structure for uploads and a per-asset
directory for derivatives. All file I/O operations are async using aiofiles.

Callers only ever see opaque locators (paths relative to the storage root);
``resolve`` refuses anything that would escape the root.
"""

from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from uuid import uuid4

import aiofiles
import aiofiles.os

from sitevisit_server.errors import TransientIOError, ValidationError

DERIVATIVES_DIR = "derivatives"


class FileStorage:
    """Async file storage rooted at ``base_path``.

    Uploads are stored in: {base_path}/{YYYY}/{MM}/{DD}/{uuid}{ext}
    Derivatives are stored in: {base_path}/derivatives/{asset_id}/{name}
    """

    def __init__(self, base_path: Path) -> None:
        """Initialize file storage.

        Args:
            base_path: Root directory for file storage.
                       Will be created if it doesn't exist.
        """
        self.base_path = Path(base_path)
        # Create base path synchronously on init (one-time operation)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def resolve(self, locator: str) -> Path:
        """Map a locator to an absolute path inside the storage root.

        Raises:
            ValidationError: If the locator is empty, absolute or escapes the root
        """
        if not locator:
            raise ValidationError("storage_locator is required")
        relative = PurePosixPath(locator)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValidationError(f"Invalid storage_locator: {locator}")
        return self.base_path.joinpath(*relative.parts)

    def new_upload_locator(self, filename: str | None, timestamp: datetime | None = None) -> str:
        """Pick a fresh date-partitioned locator keeping the file extension."""
        timestamp = timestamp or datetime.now(timezone.utc)
        suffix = PurePosixPath(filename).suffix.lower() if filename else ""
        return f"{timestamp.strftime('%Y/%m/%d')}/{uuid4().hex}{suffix}"

    @staticmethod
    def derivative_locator(asset_id: str, name: str) -> str:
        return f"{DERIVATIVES_DIR}/{asset_id}/{name}"

    async def store(self, locator: str, data: bytes) -> str:
        """Write bytes at ``locator``.

        Args:
            locator: Target locator
            data: File contents

        Returns:
            The locator, for chaining

        Raises:
            TransientIOError: If the filesystem rejects the write
        """
        filepath = self.resolve(locator)
        try:
            await aiofiles.os.makedirs(filepath.parent, exist_ok=True)
            async with aiofiles.open(filepath, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise TransientIOError(f"Failed to store {locator}: {e}") from e
        return locator

    async def store_upload(
        self, data: bytes, filename: str | None, timestamp: datetime | None = None
    ) -> str:
        """Store uploaded bytes under a new date-partitioned locator."""
        return await self.store(self.new_upload_locator(filename, timestamp), data)

    async def retrieve(self, locator: str) -> bytes:
        """Read the bytes stored at ``locator``.

        Raises:
            FileNotFoundError: If nothing is stored there.
        """
        filepath = self.resolve(locator)

        if not filepath.exists():
            raise FileNotFoundError(f"File not found: {locator}")

        async with aiofiles.open(filepath, "rb") as f:
            return await f.read()

    async def exists(self, locator: str) -> bool:
        return await aiofiles.os.path.isfile(self.resolve(locator))

    async def size(self, locator: str) -> int:
        return await aiofiles.os.path.getsize(self.resolve(locator))

    async def delete(self, locator: str) -> bool:
        """Delete the file at ``locator``.

        Returns:
            True if file was deleted, False if file did not exist.
        """
        filepath = self.resolve(locator)

        try:
            await aiofiles.os.remove(filepath)
        except FileNotFoundError:
            return False

        # Drop an emptied per-asset derivatives directory
        if filepath.parent.parent.name == DERIVATIVES_DIR:
            try:
                await aiofiles.os.rmdir(filepath.parent)
            except OSError:
                pass  # other derivatives remain
        return True

    def is_writable(self) -> bool:
        """Check that the storage root exists and accepts writes."""
        if not self.base_path.is_dir():
            return False
        marker = self.base_path / ".write_check"
        try:
            marker.touch()
            marker.unlink()
        except OSError:
            return False
        return True
