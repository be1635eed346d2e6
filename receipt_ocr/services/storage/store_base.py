"""
Abstract base classes for the pipeline's persistence boundaries.

Defines the interfaces that quota and vendor-memory stores must implement,
enabling dependency injection and easy swapping of storage backends.
Counter increments must be atomic in the backend, since several sessions
may share one store.
"""

from abc import ABC, abstractmethod

from ...models.ocr import VendorMemoryEntry


class QuotaStoreBase(ABC):
    """
    Monthly cloud OCR usage counters, keyed by "YYYY-MM".

    Implementations can use:
    - In-memory storage (for testing/demo)
    - SQLite (for single-instance deployments)
    """

    @abstractmethod
    def load(self, period: str) -> int:
        """
        Load the usage count for a period.

        Args:
            period: Calendar month key ("YYYY-MM")

        Returns:
            Number of cloud calls used in the period (0 if none recorded)
        """
        pass

    @abstractmethod
    def save(self, period: str, used: int) -> None:
        """
        Persist the usage count for a period.

        Args:
            period: Calendar month key ("YYYY-MM")
            used: New usage count

        Raises:
            StorageError: If the value could not be written
        """
        pass

    @abstractmethod
    def increment(self, period: str, limit: int) -> int:
        """
        Atomically add one call to a period, never going above ``limit``.

        Args:
            period: Calendar month key ("YYYY-MM")
            limit: Upper bound for the stored count (must be > 0)

        Returns:
            The usage count after the increment

        Raises:
            StorageError: If the value could not be written
        """
        pass


class VendorMemoryStoreBase(ABC):
    """Learned vendor signatures, unique by normalized vendor key."""

    @abstractmethod
    def load_all(self) -> list[VendorMemoryEntry]:
        """
        Load every stored vendor entry.

        Returns:
            List of entries (empty if nothing learned yet)
        """
        pass

    @abstractmethod
    def upsert(self, entry: VendorMemoryEntry) -> None:
        """
        Insert the entry, or replace the existing one with the same key.

        Args:
            entry: Fully merged entry to store

        Raises:
            StorageError: If the entry could not be written
        """
        pass
