from .memory import InMemoryQuotaStore, InMemoryVendorMemoryStore
from .sqlite import SQLiteQuotaStore, SQLiteVendorMemoryStore
from .store_base import QuotaStoreBase, VendorMemoryStoreBase

__all__ = [
    "QuotaStoreBase",
    "VendorMemoryStoreBase",
    "InMemoryQuotaStore",
    "InMemoryVendorMemoryStore",
    "SQLiteQuotaStore",
    "SQLiteVendorMemoryStore",
]
