"""
Pytest configuration and shared fixtures.

Registers the integration marker (tests that call real Azure Document
Intelligence or a real Tesseract install) and provides fakes for the two
external OCR engines.
"""

import io
import struct
import zlib
from datetime import datetime
from types import SimpleNamespace

import pytest
from PIL import Image

from receipt_ocr.services.cloud_ocr import CloudOcrClient
from receipt_ocr.services.local_ocr import LocalOcrEngine
from receipt_ocr.services.quota import QuotaTracker
from receipt_ocr.services.storage import InMemoryQuotaStore, InMemoryVendorMemoryStore
from receipt_ocr.services.vendor_memory import VendorMemory

STARBUCKS_TEXT = (
    "STARBUCKS COFFEE\n"
    "123 Main St, Seattle, WA 98101\n"
    "Date: 01/15/2024\n"
    "Total: $6.75"
)


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real Azure resources and Tesseract"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real OCR engines"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


class FakeLocalEngine(LocalOcrEngine):
    """Stands in for Tesseract: returns canned text and reports progress."""

    def __init__(self, text: str = "", available: bool = True, error: Exception | None = None):
        super().__init__(enabled=available)
        self._available = available
        self.text = text
        self.error = error
        self.calls = 0
        self.hook = None  # called inside recognize, e.g. to supersede the request

    def recognize(self, image_bytes, on_progress=None):
        self.calls += 1
        if on_progress is not None:
            for pct in (0, 50, 100):
                on_progress(pct)
        if self.hook is not None:
            self.hook()
        if self.error is not None:
            raise self.error
        return self.text


class FakeDocumentClient:
    """Stands in for DocumentIntelligenceClient."""

    def __init__(self, result=None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls = []
        self.hook = None

    def begin_analyze_document(self, model, body=None, content_type=None):
        self.calls.append({"model": model, "size": len(body or b"")})
        if self.hook is not None:
            self.hook()
        if self.error is not None:
            raise self.error
        return SimpleNamespace(result=lambda: self.result)


def make_di_result(content="", fields=None):
    """Build an object shaped like an Azure DI AnalyzeResult."""
    documents = [SimpleNamespace(fields=fields)] if fields is not None else []
    return SimpleNamespace(content=content, documents=documents)


@pytest.fixture
def clock():
    """Fixed clock inside January 2024"""
    return lambda: datetime(2024, 1, 20, 12, 0, 0)


@pytest.fixture
def quota_store():
    return InMemoryQuotaStore()


@pytest.fixture
def quota(quota_store, clock):
    return QuotaTracker(quota_store, limit=100, clock=clock)


@pytest.fixture
def memory_store():
    return InMemoryVendorMemoryStore()


@pytest.fixture
def memory(memory_store):
    return VendorMemory(memory_store)


@pytest.fixture
def document_client():
    return FakeDocumentClient(result=make_di_result(content=STARBUCKS_TEXT, fields={}))


@pytest.fixture
def configured_cloud(quota, document_client):
    """Cloud client that is enabled and configured, backed by the fake DI client"""
    return CloudOcrClient(
        quota,
        endpoint="https://example.cognitiveservices.azure.com/",
        api_key="test-key",
        enabled=True,
        client_factory=lambda: document_client,
    )


@pytest.fixture
def unconfigured_cloud(quota, document_client):
    return CloudOcrClient(
        quota,
        endpoint="",
        api_key="",
        enabled=True,
        client_factory=lambda: document_client,
    )


@pytest.fixture
def png_bytes():
    """Small white PNG, enough for the image preprocessing path"""
    image = Image.new("RGB", (120, 60), "white")
    out = io.BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def starbucks_text():
    return STARBUCKS_TEXT


@pytest.fixture
def make_local():
    """Factory for FakeLocalEngine"""
    return FakeLocalEngine


@pytest.fixture
def di_result():
    """Factory for fake Azure DI results"""
    return make_di_result


def _png_chunk(tag: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", zlib.crc32(tag + data) & 0xFFFFFFFF)


@pytest.fixture
def oversized_png():
    """PNG header declaring 20000x20000 pixels, past Pillow's decompression bomb limit"""
    header = struct.pack(">IIBBBBB", 20000, 20000, 8, 0, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + _png_chunk(b"IHDR", header) + _png_chunk(b"IEND", b"")
