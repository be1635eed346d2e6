"""
Input preparation for the extraction strategies.

Images are downscaled and converted to grayscale before recognition, which
shrinks the payload and improves OCR accuracy on phone photos. PDFs are read
page by page for their embedded text layer.
"""

import io
import re
from typing import Iterator

import PyPDF2
from loguru import logger
from PIL import Image, ImageOps, UnidentifiedImageError

from ..core.errors import UnsupportedInputError
from ..models.ocr import MediaKind

IMAGE_EXTS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tif", ".tiff", ".heic")
PDF_EXTS = (".pdf",)


def detect_media_kind(content_type: str | None, filename: str = "") -> MediaKind:
    """
    Classify an upload as image or PDF from its MIME type or file extension.

    Raises:
        UnsupportedInputError: For anything else
    """
    content_type = (content_type or "").lower()
    name = (filename or "").lower()

    if content_type == "application/pdf" or name.endswith(PDF_EXTS):
        return MediaKind.PDF
    if content_type.startswith("image/") or name.endswith(IMAGE_EXTS):
        return MediaKind.IMAGE
    raise UnsupportedInputError(f"Unsupported file type: {content_type or filename or 'unknown'}")


def prepare_image(data: bytes, max_dim: int = 1600) -> bytes:
    """
    Downscale so the longest side is at most ``max_dim`` and convert to grayscale.

    Args:
        data: Raw image bytes (JPEG, PNG, etc.)
        max_dim: Longest allowed side in pixels (images are never upscaled)

    Returns:
        PNG bytes, or the original bytes if the image could not be decoded

    Raises:
        UnsupportedInputError: The image declares more pixels than Pillow will decode
    """
    try:
        image = Image.open(io.BytesIO(data))
        image = ImageOps.exif_transpose(image)

        scale = min(1.0, max_dim / max(image.width, image.height))
        if scale < 1.0:
            size = (max(1, round(image.width * scale)), max(1, round(image.height * scale)))
            image = image.resize(size, Image.Resampling.LANCZOS)

        if image.mode != "L":
            image = image.convert("L")

        out = io.BytesIO()
        image.save(out, format="PNG")
        return out.getvalue()

    except Image.DecompressionBombError as e:
        logger.warning("Image rejected as too large", error=str(e))
        raise UnsupportedInputError("Image is too large to process.") from e
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning("Image preprocessing failed, using original image", error=str(e))
        return data


def iter_pdf_page_texts(data: bytes) -> Iterator[str]:
    """Yield the text layer of each page in order (empty string for image-only pages)."""
    reader = PyPDF2.PdfReader(io.BytesIO(data))
    for page in reader.pages:
        yield page.extract_text() or ""


def normalize_ocr_text(text: str) -> str:
    """Collapse whitespace within lines and drop empty lines."""
    lines = (re.sub(r"\s+", " ", line).strip() for line in re.split(r"\r?\n", text or ""))
    return "\n".join(line for line in lines if line)
