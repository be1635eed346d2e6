"""
In-memory stores (for tests and demo mode).
In production, use the SQLite stores.
"""
import threading
from typing import Dict

from ...models.ocr import VendorMemoryEntry
from .store_base import QuotaStoreBase, VendorMemoryStoreBase


class InMemoryQuotaStore(QuotaStoreBase):
    def __init__(self, usage: Dict[str, int] | None = None):
        self._usage: Dict[str, int] = dict(usage or {})
        self._lock = threading.Lock()

    def load(self, period: str) -> int:
        return self._usage.get(period, 0)

    def save(self, period: str, used: int) -> None:
        self._usage[period] = used

    def increment(self, period: str, limit: int) -> int:
        with self._lock:
            used = min(limit, self._usage.get(period, 0) + 1)
            self._usage[period] = used
            return used


class InMemoryVendorMemoryStore(VendorMemoryStoreBase):
    def __init__(self, entries: list[VendorMemoryEntry] | None = None):
        self._entries: Dict[str, VendorMemoryEntry] = {}
        for entry in entries or []:
            self.upsert(entry)

    def load_all(self) -> list[VendorMemoryEntry]:
        """Entries in insertion order, as copies"""
        return [entry.model_copy(deep=True) for entry in self._entries.values()]

    def upsert(self, entry: VendorMemoryEntry) -> None:
        self._entries[entry.key] = entry.model_copy(deep=True)
