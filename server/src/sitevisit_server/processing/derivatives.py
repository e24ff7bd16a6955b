"""Derivative generation for images (Pillow) and PDFs (pypdf).

The CPU-bound parts run in a worker thread so the ARQ event loop stays
responsive.
"""

import asyncio
import io

from PIL import Image, ImageOps, UnidentifiedImageError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from sitevisit_server.errors import PermanentProcessingError
from sitevisit_server.media.values import Derivatives
from sitevisit_server.storage.filesystem import FileStorage

THUMBNAIL_SIZE = (400, 300)  # cropped to fill
PREVIEW_SIZE = (1200, 800)  # scaled to fit
JPEG_QUALITY = 85
MAX_EXTRACTED_CHARS = 100_000


def _to_jpeg(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=JPEG_QUALITY, optimize=True)
    return buffer.getvalue()


def render_image(data: bytes) -> tuple[bytes, bytes, int, int]:
    """Render thumbnail and preview JPEGs.

    Args:
        data: Original image bytes

    Returns:
        Tuple of (thumbnail bytes, preview bytes, original width, original height)

    Raises:
        PermanentProcessingError: If the bytes are not a readable image
    """
    try:
        with Image.open(io.BytesIO(data)) as opened:
            opened.load()
            image = ImageOps.exif_transpose(opened)
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise PermanentProcessingError(f"Unreadable image: {e}") from e

    width, height = image.size
    rgb = image.convert("RGB")

    thumbnail = ImageOps.fit(rgb, THUMBNAIL_SIZE, method=Image.Resampling.LANCZOS)

    preview = rgb.copy()
    preview.thumbnail(PREVIEW_SIZE, Image.Resampling.LANCZOS)

    return _to_jpeg(thumbnail), _to_jpeg(preview), width, height


def read_pdf(data: bytes) -> tuple[int, str]:
    """Count pages and extract text from a PDF.

    Raises:
        PermanentProcessingError: If the bytes are not a readable PDF
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            raise PermanentProcessingError("PDF is encrypted")
        page_count = len(reader.pages)
        parts: list[str] = []
        length = 0
        for page in reader.pages:
            text = page.extract_text() or ""
            parts.append(text)
            length += len(text)
            if length >= MAX_EXTRACTED_CHARS:
                break
    except (PdfReadError, ValueError, KeyError) as e:
        raise PermanentProcessingError(f"Unreadable PDF: {e}") from e

    return page_count, "\n".join(parts).strip()[:MAX_EXTRACTED_CHARS]


async def build_image_derivatives(storage: FileStorage, asset_id: str, data: bytes) -> Derivatives:
    """Render and store image derivatives for an asset."""
    thumbnail, preview, width, height = await asyncio.to_thread(render_image, data)
    thumbnail_locator = await storage.store(
        storage.derivative_locator(asset_id, "thumbnail.jpg"), thumbnail
    )
    preview_locator = await storage.store(
        storage.derivative_locator(asset_id, "preview.jpg"), preview
    )
    return Derivatives(
        thumbnail_locator=thumbnail_locator,
        preview_locator=preview_locator,
        width=width,
        height=height,
    )


async def build_pdf_derivatives(storage: FileStorage, asset_id: str, data: bytes) -> Derivatives:
    """Extract page count and text for a PDF asset."""
    page_count, text = await asyncio.to_thread(read_pdf, data)
    return Derivatives(extracted_text=text or None, page_count=page_count)
