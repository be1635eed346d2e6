"""
SQLite-backed stores for cloud OCR usage and vendor memory.

Provides persistent storage across application restarts. The usage counter
is incremented inside a single write transaction (BEGIN IMMEDIATE), so
concurrent sessions sharing one database never lose a count.
"""

import json
import sqlite3
from abc import ABC, abstractmethod
from contextlib import closing
from datetime import datetime, UTC
from pathlib import Path

from ...core.errors import StorageError
from ...models.ocr import VendorMemoryEntry
from .store_base import QuotaStoreBase, VendorMemoryStoreBase

# Seconds to wait for another connection's write lock
BUSY_TIMEOUT = 30.0


class _SQLiteStore(ABC):
    """Connection handling shared by the SQLite stores."""

    def __init__(self, db_path: str):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (parent directory is created)
        """
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    @abstractmethod
    def _init_database(self):
        """Create the store's tables if they don't exist"""

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT)
        conn.row_factory = sqlite3.Row
        return conn


class SQLiteQuotaStore(_SQLiteStore, QuotaStoreBase):
    """One row per calendar month with the number of cloud calls used."""

    def _init_database(self):
        """Create usage table if it doesn't exist"""
        with closing(self._get_connection()) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS cloud_ocr_usage (
                    period TEXT PRIMARY KEY,
                    used INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL,
                    CHECK (used >= 0)
                )
            """)
            conn.commit()

    def load(self, period: str) -> int:
        try:
            with closing(self._get_connection()) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT used FROM cloud_ocr_usage WHERE period = ?", (period,)
                )
                row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Could not load usage for {period}: {e}") from e

        return int(row["used"]) if row is not None else 0

    def save(self, period: str, used: int) -> None:
        updated_at = datetime.now(UTC).isoformat()
        try:
            with closing(self._get_connection()) as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO cloud_ocr_usage (period, used, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(period) DO UPDATE SET
                        used = excluded.used,
                        updated_at = excluded.updated_at
                """, (period, used, updated_at))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Could not save usage for {period}: {e}") from e

    def increment(self, period: str, limit: int) -> int:
        updated_at = datetime.now(UTC).isoformat()
        try:
            with closing(self._get_connection()) as conn:
                conn.isolation_level = None  # explicit transaction below
                cursor = conn.cursor()
                cursor.execute("BEGIN IMMEDIATE")
                try:
                    cursor.execute("""
                        INSERT INTO cloud_ocr_usage (period, used, updated_at)
                        VALUES (?, MIN(1, ?), ?)
                        ON CONFLICT(period) DO UPDATE SET
                            used = MIN(used + 1, ?),
                            updated_at = excluded.updated_at
                    """, (period, limit, updated_at, limit))
                    cursor.execute(
                        "SELECT used FROM cloud_ocr_usage WHERE period = ?", (period,)
                    )
                    row = cursor.fetchone()
                    cursor.execute("COMMIT")
                except sqlite3.Error:
                    cursor.execute("ROLLBACK")
                    raise
        except sqlite3.Error as e:
            raise StorageError(f"Could not record usage for {period}: {e}") from e

        return int(row["used"])


class SQLiteVendorMemoryStore(_SQLiteStore, VendorMemoryStoreBase):
    """Vendor signatures keyed by normalized vendor name; signal lists are JSON."""

    def _init_database(self):
        """Create vendor memory table if it doesn't exist"""
        with closing(self._get_connection()) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS vendor_memory (
                    key TEXT PRIMARY KEY,
                    vendor TEXT NOT NULL,
                    domains TEXT NOT NULL DEFAULT '[]',
                    addresses TEXT NOT NULL DEFAULT '[]',
                    lines TEXT NOT NULL DEFAULT '[]',
                    tokens TEXT NOT NULL DEFAULT '[]',
                    count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_vendor_memory_created_at
                ON vendor_memory(created_at)
            """)
            conn.commit()

    def load_all(self) -> list[VendorMemoryEntry]:
        """
        Load every entry (oldest first, so match ties resolve the same way
        as the in-memory store).
        """
        try:
            with closing(self._get_connection()) as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT key, vendor, domains, addresses, lines, tokens, count, updated_at
                    FROM vendor_memory
                    ORDER BY created_at ASC, rowid ASC
                """)
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Could not load vendor memory: {e}") from e

        return [
            VendorMemoryEntry(
                key=row["key"],
                vendor=row["vendor"],
                domains=json.loads(row["domains"]),
                addresses=json.loads(row["addresses"]),
                lines=json.loads(row["lines"]),
                tokens=json.loads(row["tokens"]),
                count=row["count"],
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    def upsert(self, entry: VendorMemoryEntry) -> None:
        created_at = datetime.now(UTC).isoformat()
        try:
            with closing(self._get_connection()) as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO vendor_memory
                        (key, vendor, domains, addresses, lines, tokens, count, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        vendor = excluded.vendor,
                        domains = excluded.domains,
                        addresses = excluded.addresses,
                        lines = excluded.lines,
                        tokens = excluded.tokens,
                        count = excluded.count,
                        updated_at = excluded.updated_at
                """, (
                    entry.key,
                    entry.vendor,
                    json.dumps(entry.domains),
                    json.dumps(entry.addresses),
                    json.dumps(entry.lines),
                    json.dumps(entry.tokens),
                    entry.count,
                    created_at,
                    entry.updated_at,
                ))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Could not save vendor {entry.vendor!r}: {e}") from e
