from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel

from ..core.config import settings
from ..models.ocr import OcrSuggestion, VendorMemoryEntry
from ..services.cloud_ocr import CloudOcrClient
from ..services.local_ocr import LocalOcrEngine
from ..services.orchestrator import ProviderOrchestrator, SessionRegistry
from ..services.quota import QuotaTracker
from ..services.storage import SQLiteQuotaStore, SQLiteVendorMemoryStore
from ..services.vendor_memory import VendorMemory


class SuggestResponse(BaseModel):
    token: int
    provider: str
    reason: str
    status: str
    suggestion: OcrSuggestion | None = None
    category: str = ""
    text: str = ""  # Full extracted text, needed to confirm a vendor later
    vendor_from_memory: bool = False
    quota: dict


class StatusResponse(BaseModel):
    cloud_available: bool
    cloud_reason: str | None = None
    local_available: bool
    local_reason: str | None = None
    pdf_text_available: bool
    quota: dict
    session_status: str = ""
    session_token: int = 0


class VendorsResponse(BaseModel):
    vendors: list[VendorMemoryEntry]


@dataclass
class Pipeline:
    """Everything the OCR routes need, wired once per process."""
    orchestrator: ProviderOrchestrator
    quota: QuotaTracker
    memory: VendorMemory
    sessions: SessionRegistry


def build_pipeline(
    quota_store=None,
    memory_store=None,
    cloud_client_factory=None,
) -> Pipeline:
    data_dir = Path(settings.data_dir)
    quota_store = quota_store or SQLiteQuotaStore(
        settings.quota_db_path or str(data_dir / "cloud_ocr_usage.db")
    )
    memory_store = memory_store or SQLiteVendorMemoryStore(
        settings.vendor_memory_db_path or str(data_dir / "vendor_memory.db")
    )

    quota = QuotaTracker(quota_store, limit=settings.cloud_ocr_monthly_limit)
    memory = VendorMemory(memory_store)
    orchestrator = ProviderOrchestrator(
        cloud=CloudOcrClient(quota, client_factory=cloud_client_factory),
        local=LocalOcrEngine(),
        quota=quota,
        memory=memory,
    )
    return Pipeline(orchestrator=orchestrator, quota=quota, memory=memory, sessions=SessionRegistry())


_pipeline: Pipeline | None = None


def get_pipeline() -> Pipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline()
    return _pipeline
