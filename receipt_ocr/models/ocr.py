"""
Data model for the OCR suggestion pipeline.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class MediaKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"


class OcrMode(str, Enum):
    AUTO = "auto"
    FORCE_LOCAL = "force-local"
    FORCE_CLOUD = "force-cloud"


class Provider(str, Enum):
    PDF_TEXT = "pdf-text"
    CLOUD_OCR = "cloud-ocr"
    LOCAL_OCR = "local-ocr"
    NONE = "none"


class ExtractionRequest(BaseModel):
    """One user-initiated upload. Superseded as soon as a newer token is issued."""
    model_config = ConfigDict(frozen=True)

    file_ref: str
    media_kind: MediaKind
    token: int
    mode: OcrMode = OcrMode.AUTO


class OcrSuggestion(BaseModel):
    date: str | None = None  # YYYY-MM-DD
    vendor: str | None = Field(default=None, min_length=1)
    location: str | None = None  # "City, ST"
    total: float | None = Field(default=None, ge=0)

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.date, self.vendor, self.location, self.total)
        )

    @classmethod
    def build(
        cls,
        date: str | None = None,
        vendor: str | None = None,
        location: str | None = None,
        total: float | None = None,
    ) -> "OcrSuggestion | None":
        """Create a suggestion, or None when every field is absent."""
        suggestion = cls(
            date=date or None,
            vendor=vendor or None,
            location=location or None,
            total=total,
        )
        return None if suggestion.is_empty() else suggestion


class QuotaState(BaseModel):
    period: str  # YYYY-MM
    limit: int = Field(ge=0)  # 0 = unlimited
    used: int = Field(ge=0)

    @property
    def unlimited(self) -> bool:
        return self.limit == 0

    @property
    def remaining(self) -> int | None:
        if self.unlimited:
            return None
        return max(0, self.limit - self.used)

    @property
    def allowed(self) -> bool:
        return self.unlimited or self.used < self.limit

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "limit": self.limit,
            "used": self.used,
            "remaining": self.remaining,
            "allowed": self.allowed,
        }


class VendorMemoryEntry(BaseModel):
    vendor: str
    key: str
    domains: list[str] = []
    addresses: list[str] = []
    lines: list[str] = []
    tokens: list[str] = []
    count: int = 0
    updated_at: str | None = None


class ProviderDecision(BaseModel):
    """Which strategy produced (or failed to produce) the result, and why."""
    provider: Provider
    reason: str


class ExtractedText(BaseModel):
    """
    Output of one extraction strategy.

    Cloud OCR fills the structured fields it recognised; text-only strategies
    leave them empty and FieldExtractor works from ``text``.
    """
    provider: Provider
    text: str = ""
    date: str | None = None
    vendor: str | None = None
    location: str | None = None
    total: float | None = None


class SuggestionResult(BaseModel):
    token: int
    decision: ProviderDecision
    status: str
    suggestion: OcrSuggestion | None = None
    category: str = ""
    text: str = ""
    vendor_from_memory: bool = False
