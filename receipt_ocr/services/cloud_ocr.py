
from loguru import logger
from azure.ai.documentintelligence import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import AzureError

from ..core.config import settings
from ..core.errors import (
    ConfigurationError,
    EmptyResultError,
    QuotaExceededError,
    TransportError,
    UnsupportedInputError,
)
from ..models.ocr import ExtractedText, Provider
from .field_extractor import extract_date, extract_total, parse_city_state
from .quota import QuotaTracker

# Field names differ between the prebuilt receipt and invoice models (AZ_DI_MODEL)
FIELD_NAMES = {
    "vendor": ("MerchantName", "VendorName"),
    "date": ("TransactionDate", "InvoiceDate"),
    "total": ("Total", "InvoiceTotal", "AmountDue"),
    "address": ("MerchantAddress", "VendorAddress"),
}

def _is_placeholder(value: str | None) -> bool:
    return not value or value.startswith("REPLACE_WITH")


def _field(fields, names):
    if not fields:
        return None
    for name in names:
        if name in fields and fields[name] is not None:
            return fields[name]
    return None


def _field_content(field) -> str | None:
    if field is None:
        return None
    if getattr(field, "content", None):
        return str(field.content).strip() or None
    if getattr(field, "value_string", None):
        return str(field.value_string).strip() or None
    return None


def _field_date(field) -> str | None:
    if field is None:
        return None
    value = getattr(field, "value_date", None)
    if value is not None:
        return value.isoformat()
    content = _field_content(field)
    return extract_date(content) if content else None


def _field_total(field) -> float | None:
    if field is None:
        return None
    currency = getattr(field, "value_currency", None)
    amount = getattr(currency, "amount", None) if currency is not None else None
    if amount is None:
        amount = getattr(field, "value_number", None)
    if amount is not None:
        try:
            return abs(float(amount))
        except (TypeError, ValueError):
            logger.warning(f"Could not parse receipt total: {amount}")
    content = _field_content(field)
    return extract_total(content) if content else None


def _field_location(field) -> str | None:
    if field is None:
        return None
    address = getattr(field, "value_address", None)
    if address is not None:
        city = (getattr(address, "city", None) or "").strip()
        state = (getattr(address, "state", None) or "").strip()
        if city and state:
            return f"{city}, {state}"
    content = _field_content(field)
    return parse_city_state(content) if content else None


class CloudOcrClient:
    """
    Cloud OCR boundary backed by Azure AI Document Intelligence.

    Refuses to call out when the service is disabled, not configured, or the
    monthly quota is spent. Recording usage after a completed call is the
    caller's job, so that superseded runs do not count.
    """

    def __init__(
        self,
        quota: QuotaTracker,
        endpoint: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        enabled: bool | None = None,
        max_bytes: int | None = None,
        client_factory=None,
    ):
        self.quota = quota
        self.endpoint = endpoint if endpoint is not None else settings.az_di_endpoint
        self.api_key = api_key if api_key is not None else settings.az_di_api_key
        self.model = model or settings.az_di_model
        self.enabled = settings.cloud_ocr_enabled if enabled is None else enabled
        self.max_bytes = max_bytes or settings.cloud_ocr_max_bytes
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> DocumentIntelligenceClient:
        return DocumentIntelligenceClient(
            endpoint=self.endpoint,
            credential=AzureKeyCredential(self.api_key),
        )

    @property
    def configured(self) -> bool:
        return not (_is_placeholder(self.endpoint) or _is_placeholder(self.api_key))

    def blocking_reason(self) -> str | None:
        """Why a cloud call would be refused right now, or None if it is allowed."""
        if not self.enabled:
            return "Cloud OCR is disabled."
        if not self.configured:
            return "Cloud OCR is not configured."
        state = self.quota.status()
        if not state.allowed:
            return f"Cloud OCR monthly limit reached ({state.limit})."
        return None

    def available(self) -> bool:
        return self.blocking_reason() is None

    def ensure_available(self) -> None:
        """
        Raises:
            ConfigurationError: Disabled or missing endpoint/key
            QuotaExceededError: Monthly limit reached
        """
        if not self.enabled:
            raise ConfigurationError("Cloud OCR is disabled.")
        if not self.configured:
            raise ConfigurationError("Cloud OCR is not configured.")
        state = self.quota.status()
        if not state.allowed:
            raise QuotaExceededError(
                f"Cloud OCR monthly limit reached ({state.limit}). "
                "Try next month or switch to local OCR.",
                limit=state.limit,
                remaining=state.remaining,
            )

    def analyze(self, file_bytes: bytes) -> ExtractedText:
        """
        Send one document to the cloud service and map the response.

        Args:
            file_bytes: Image or PDF payload

        Returns:
            ExtractedText with structured fields and the full OCR content
        """
        self.ensure_available()
        if not file_bytes:
            raise UnsupportedInputError("Document is empty.")
        if len(file_bytes) > self.max_bytes:
            raise UnsupportedInputError(
                f"Document exceeds {self.max_bytes // (1024 * 1024)}MB limit."
            )

        logger.info(
            "Using Azure Document Intelligence for receipt extraction",
            model=self.model,
            size_bytes=len(file_bytes),
        )

        try:
            client = self._client_factory()
            poller = client.begin_analyze_document(
                self.model,
                body=file_bytes,
                content_type="application/octet-stream",
            )
            result = poller.result()
        except AzureError as e:
            logger.error(f"Azure DI extraction failed: {str(e)}")
            raise TransportError(f"Cloud OCR request failed: {str(e)}") from e

        content = (getattr(result, "content", None) or "").strip()
        documents = getattr(result, "documents", None) or []
        fields = getattr(documents[0], "fields", None) if documents else None

        extracted = ExtractedText(
            provider=Provider.CLOUD_OCR,
            text=content,
            vendor=_field_content(_field(fields, FIELD_NAMES["vendor"])),
            date=_field_date(_field(fields, FIELD_NAMES["date"])),
            total=_field_total(_field(fields, FIELD_NAMES["total"])),
            location=_field_location(_field(fields, FIELD_NAMES["address"])),
        )

        has_fields = any(
            value is not None
            for value in (extracted.vendor, extracted.date, extracted.total, extracted.location)
        )
        if not content and not has_fields:
            raise EmptyResultError("Cloud OCR returned no text.")

        logger.info(
            "Successfully extracted receipt data from Azure DI",
            vendor=extracted.vendor,
            chars=len(content),
            structured=has_fields,
        )
        return extracted
