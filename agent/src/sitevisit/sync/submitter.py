"""Async HTTP submitter sending one queued capture to the server."""

import asyncio
import mimetypes
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from sitevisit import __version__
from sitevisit.sync.queue import PendingCaptureRecord

# Left out of the submission so the server applies its per-type default
GENERIC_MIME_TYPE = "application/octet-stream"


@dataclass
class SubmitResult:
    """Result of a single submission attempt."""

    success: bool
    capture_id: str | None = None
    media_asset_id: str | None = None
    error: str | None = None
    retryable: bool = True
    elapsed_ms: float = 0.0


class SubmissionRejected(Exception):
    """Raised internally when the server answers with a non-success status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Server returned {status_code}: {body[:200]}")
        self.status_code = status_code


class CaptureSubmitter:
    """Async HTTP client that submits captures to the server.

    Each call to :meth:`submit` is exactly one attempt bounded by
    ``timeout``: the local file (if any) is uploaded to obtain a storage
    locator, then the capture itself is posted. Retrying is the caller's
    job; the drain loop of the sync coordinator provides it.
    """

    def __init__(
        self,
        server_url: str,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the submitter.

        Args:
            server_url: Base URL of the server (e.g., http://localhost:8000)
            timeout: Upper bound in seconds for one whole submission
            transport: Optional httpx transport, used by tests
        """
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout

        self._client = httpx.AsyncClient(
            base_url=self.server_url,
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": f"sitevisit-agent/{__version__}"},
            transport=transport,
        )

    async def submit(self, record: PendingCaptureRecord) -> SubmitResult:
        """Submit one pending capture.

        Never raises: every failure is reported in the returned result.

        Args:
            record: The queued capture to send

        Returns:
            SubmitResult with server ids on success or an error description
        """
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(self._submit(record), timeout=self.timeout)
        except asyncio.TimeoutError:
            result = SubmitResult(
                success=False,
                error=f"Timeout: submission exceeded {self.timeout:.0f}s",
            )
        except FileNotFoundError as e:
            result = SubmitResult(
                success=False,
                error=f"Local file missing: {e.filename}",
                retryable=False,
            )
        except SubmissionRejected as e:
            result = SubmitResult(
                success=False,
                error=str(e),
                retryable=e.status_code >= 500 or e.status_code == 429,
            )
        except httpx.ConnectError as e:
            result = SubmitResult(success=False, error=f"Connection error: {e}")
        except httpx.TimeoutException as e:
            result = SubmitResult(success=False, error=f"Timeout: {e}")
        except httpx.HTTPError as e:
            result = SubmitResult(success=False, error=f"HTTP error: {e}")
        except Exception as e:
            result = SubmitResult(success=False, error=f"Unexpected error: {e}")

        result.elapsed_ms = (time.monotonic() - start) * 1000
        return result

    async def _submit(self, record: PendingCaptureRecord) -> SubmitResult:
        upload: dict[str, Any] = {}
        if record.local_blob_ref:
            upload = await self._upload_blob(Path(record.local_blob_ref))
        mime_type = upload.get("mime_type")
        if mime_type == GENERIC_MIME_TYPE:
            mime_type = None

        response = await self._client.post(
            "/api/captures",
            json=record.to_submission(
                upload.get("storage_locator"),
                mime_type=mime_type,
                file_size=upload.get("size_bytes"),
            ),
        )
        if response.status_code not in (200, 201):
            raise SubmissionRejected(response.status_code, response.text)

        body = self._json(response)
        return SubmitResult(
            success=True,
            capture_id=body.get("id"),
            media_asset_id=body.get("media_asset_id"),
        )

    async def _upload_blob(self, filepath: Path) -> dict[str, Any]:
        """Upload captured bytes.

        Returns:
            The upload response: storage_locator, size_bytes and mime_type
        """
        data = await asyncio.to_thread(filepath.read_bytes)
        content_type = mimetypes.guess_type(filepath.name)[0] or GENERIC_MIME_TYPE

        response = await self._client.post(
            "/api/uploads",
            files={"file": (filepath.name, data, content_type)},
        )
        if response.status_code not in (200, 201):
            raise SubmissionRejected(response.status_code, response.text)

        body = self._json(response)
        if not body.get("storage_locator"):
            raise SubmissionRejected(response.status_code, "upload response had no storage_locator")
        body.setdefault("mime_type", content_type)
        body.setdefault("size_bytes", len(data))
        return body

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def check_server(self) -> bool:
        """Check if the server is reachable and ready.

        Returns:
            True if the readiness check answers 200, False otherwise
        """
        try:
            response = await self._client.get(
                "/health/ready",
                timeout=httpx.Timeout(5.0),
            )
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "CaptureSubmitter":
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        await self.close()
