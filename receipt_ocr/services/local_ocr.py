"""
Local OCR boundary backed by Tesseract.
"""

import io
from typing import Callable

import pytesseract
from loguru import logger
from PIL import Image, UnidentifiedImageError

from ..core.config import settings
from ..core.errors import ConfigurationError, EmptyResultError, TransportError

ProgressCallback = Callable[[int], None]

# OEM 3 = default engine, PSM 6 = single uniform block of text (receipts)
TESSERACT_CONFIG = r"--oem 3 --psm 6"


class LocalOcrEngine:
    """Runs Tesseract in-process; no network call, no quota."""

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        lang: str | None = None,
        enabled: bool | None = None,
    ):
        self.tesseract_cmd = tesseract_cmd or settings.tesseract_cmd
        self.lang = lang or settings.tesseract_lang
        self.enabled = settings.local_ocr_enabled if enabled is None else enabled
        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        self._available: bool | None = None

    def is_available(self) -> bool:
        """True if enabled and the tesseract binary can be executed (checked once)."""
        if not self.enabled:
            return False
        if self._available is None:
            try:
                version = pytesseract.get_tesseract_version()
                logger.debug("Tesseract available", version=str(version))
                self._available = True
            except (pytesseract.TesseractNotFoundError, OSError) as e:
                logger.warning("Tesseract not available", error=str(e))
                self._available = False
        return self._available

    def blocking_reason(self) -> str | None:
        if not self.enabled:
            return "Local OCR is disabled."
        if not self.is_available():
            return "Local OCR engine is not installed."
        return None

    def recognize(self, image_bytes: bytes, on_progress: ProgressCallback | None = None) -> str:
        """
        Extract text from a (preprocessed) image.

        Args:
            image_bytes: Image bytes, ideally from normalizer.prepare_image
            on_progress: Optional callback receiving percentage complete;
                for status display only

        Returns:
            Recognized text, stripped
        """
        if not self.is_available():
            raise ConfigurationError(self.blocking_reason() or "Local OCR unavailable.")

        def report(pct: int):
            if on_progress is not None:
                on_progress(pct)

        report(0)
        try:
            image = Image.open(io.BytesIO(image_bytes))
            report(50)
            text = pytesseract.image_to_string(image, lang=self.lang, config=TESSERACT_CONFIG)
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            pytesseract.TesseractError,
            OSError,
            RuntimeError,
            ValueError,
        ) as e:
            logger.error(f"Local OCR failed: {str(e)}")
            raise TransportError(f"Local OCR failed: {str(e)}") from e
        report(100)

        text = (text or "").strip()
        if not text:
            raise EmptyResultError("Local OCR found no text.")
        return text
