"""
Tests for the Azure Document Intelligence boundary.

The DI client is replaced by a fake via ``client_factory``; field objects
are SimpleNamespace values shaped like the SDK's DocumentField.
"""

from datetime import date
from types import SimpleNamespace

import pytest
from azure.core.exceptions import ServiceRequestError

from receipt_ocr.core.config import settings
from receipt_ocr.core.errors import (
    ConfigurationError,
    EmptyResultError,
    QuotaExceededError,
    TransportError,
    UnsupportedInputError,
)
from receipt_ocr.models.ocr import Provider
from receipt_ocr.services.cloud_ocr import CloudOcrClient
from receipt_ocr.services.quota import QuotaTracker
from receipt_ocr.services.storage import InMemoryQuotaStore


def receipt_fields():
    return {
        "MerchantName": SimpleNamespace(content="Blue Bottle Coffee"),
        "TransactionDate": SimpleNamespace(value_date=date(2024, 3, 5), content="03/05/2024"),
        "Total": SimpleNamespace(value_currency=SimpleNamespace(amount=12.5), content="$12.50"),
        "MerchantAddress": SimpleNamespace(
            value_address=SimpleNamespace(city="Oakland", state="CA"),
            content="300 Webster St, Oakland, CA 94607",
        ),
    }


def test_analyze_maps_receipt_fields(configured_cloud, document_client, di_result):
    document_client.result = di_result(content="Blue Bottle Coffee\nTotal $12.50", fields=receipt_fields())

    extracted = configured_cloud.analyze(b"image-bytes")

    assert extracted.provider == Provider.CLOUD_OCR
    assert extracted.vendor == "Blue Bottle Coffee"
    assert extracted.date == "2024-03-05"
    assert extracted.total == 12.5
    assert extracted.location == "Oakland, CA"
    assert extracted.text == "Blue Bottle Coffee\nTotal $12.50"
    assert document_client.calls == [{"model": settings.az_di_model, "size": len(b"image-bytes")}]


def test_analyze_falls_back_to_field_content(quota, document_client, di_result):
    cloud = CloudOcrClient(
        quota,
        endpoint="https://example.cognitiveservices.azure.com/",
        api_key="test-key",
        model="prebuilt-invoice",
        enabled=True,
        client_factory=lambda: document_client,
    )
    fields = {
        "VendorName": SimpleNamespace(content="Contoso Ltd"),
        "InvoiceDate": SimpleNamespace(content="Jan 5, 2024"),
        "InvoiceTotal": SimpleNamespace(content="Total $1,050.00"),
        "VendorAddress": SimpleNamespace(content="1 Microsoft Way, Redmond, WA 98052"),
    }
    document_client.result = di_result(content="", fields=fields)

    extracted = cloud.analyze(b"pdf-bytes")

    assert extracted.vendor == "Contoso Ltd"
    assert extracted.date == "2024-01-05"
    assert extracted.total == 1050.00
    assert extracted.location == "Redmond, WA"
    assert document_client.calls[0]["model"] == "prebuilt-invoice"


@pytest.mark.parametrize("city, state", [("Seattle", None), (None, "WA")])
def test_partial_address_leaves_location_unset(configured_cloud, document_client, di_result, city, state):
    fields = {
        "MerchantName": SimpleNamespace(content="Blue Bottle Coffee"),
        "MerchantAddress": SimpleNamespace(
            value_address=SimpleNamespace(city=city, state=state),
            content=city or state,
        ),
    }
    document_client.result = di_result(content="Blue Bottle Coffee", fields=fields)

    extracted = configured_cloud.analyze(b"image-bytes")

    assert extracted.vendor == "Blue Bottle Coffee"
    assert extracted.location is None


def test_analyze_does_not_count_quota(configured_cloud, quota):
    configured_cloud.analyze(b"image-bytes")

    assert quota.status().used == 0


def test_analyze_empty_result(configured_cloud, document_client, di_result):
    document_client.result = di_result(content="   ")

    with pytest.raises(EmptyResultError):
        configured_cloud.analyze(b"image-bytes")


def test_analyze_transport_error(configured_cloud, document_client):
    document_client.error = ServiceRequestError("connection reset")

    with pytest.raises(TransportError) as exc:
        configured_cloud.analyze(b"image-bytes")
    assert "connection reset" in exc.value.reason


def test_analyze_rejects_oversize_payload(quota, document_client):
    cloud = CloudOcrClient(
        quota,
        endpoint="https://example.cognitiveservices.azure.com/",
        api_key="test-key",
        enabled=True,
        max_bytes=10,
        client_factory=lambda: document_client,
    )

    with pytest.raises(UnsupportedInputError):
        cloud.analyze(b"x" * 11)
    with pytest.raises(UnsupportedInputError):
        cloud.analyze(b"")
    assert document_client.calls == []


def test_not_configured_never_calls_out(unconfigured_cloud, document_client):
    assert unconfigured_cloud.configured is False
    assert unconfigured_cloud.blocking_reason() == "Cloud OCR is not configured."

    with pytest.raises(ConfigurationError):
        unconfigured_cloud.analyze(b"image-bytes")
    assert document_client.calls == []


def test_placeholder_credentials_are_not_configured(quota):
    cloud = CloudOcrClient(
        quota,
        endpoint="REPLACE_WITH_YOUR_ENDPOINT",
        api_key="REPLACE_WITH_YOUR_KEY",
        enabled=True,
    )
    assert cloud.configured is False


def test_disabled_is_reported_separately(quota):
    cloud = CloudOcrClient(
        quota,
        endpoint="https://example.cognitiveservices.azure.com/",
        api_key="test-key",
        enabled=False,
    )

    assert cloud.configured is True
    assert cloud.blocking_reason() == "Cloud OCR is disabled."
    with pytest.raises(ConfigurationError):
        cloud.ensure_available()


def test_quota_exhausted_never_calls_out(clock, document_client):
    quota = QuotaTracker(InMemoryQuotaStore({"2024-01": 100}), limit=100, clock=clock)
    cloud = CloudOcrClient(
        quota,
        endpoint="https://example.cognitiveservices.azure.com/",
        api_key="test-key",
        enabled=True,
        client_factory=lambda: document_client,
    )

    assert cloud.available() is False
    assert cloud.blocking_reason() == "Cloud OCR monthly limit reached (100)."
    with pytest.raises(QuotaExceededError) as exc:
        cloud.analyze(b"image-bytes")
    assert exc.value.limit == 100
    assert exc.value.remaining == 0
    assert document_client.calls == []


@pytest.mark.integration
def test_real_azure_receipt(quota):
    """Requires AZ_DI_ENDPOINT and AZ_DI_API_KEY and a sample receipt image"""
    from pathlib import Path

    sample = Path(__file__).parent.parent / "samples" / "receipts" / "receipt.jpg"
    if not sample.exists():
        pytest.skip(f"Sample file not found: {sample}")

    cloud = CloudOcrClient(quota)
    if not cloud.configured:
        pytest.skip("Azure Document Intelligence not configured")

    extracted = cloud.analyze(sample.read_bytes())
    assert extracted.text
