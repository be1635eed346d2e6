"""
Monthly call budget for the cloud OCR service.

Usage is counted per calendar month ("YYYY-MM"). A limit of 0 means unlimited:
the counter is then left untouched and every call is allowed.
"""

from datetime import datetime
from typing import Callable

from loguru import logger

from ..core.errors import StorageError
from ..models.ocr import QuotaState
from .storage.store_base import QuotaStoreBase


def period_key(now: datetime) -> str:
    return now.strftime("%Y-%m")


class QuotaTracker:
    """
    Tracks cloud OCR usage against a monthly limit.

    Callers must call ``increment`` exactly once per completed cloud call.
    Persistence failures never block a request: a failed load reads as zero
    usage and a failed save means "not counted this time".
    """

    def __init__(
        self,
        store: QuotaStoreBase,
        limit: int = 100,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self.store = store
        self.limit = limit
        self._clock = clock

    def _period(self, period: str | None) -> str:
        return period or period_key(self._clock())

    def _load_used(self, period: str) -> int:
        try:
            used = self.store.load(period)
        except StorageError as e:
            logger.warning("Could not load cloud OCR usage", period=period, error=str(e))
            return 0
        used = max(0, int(used))
        if self.limit > 0:
            used = min(used, self.limit)
        return used

    def _save_used(self, period: str, used: int) -> bool:
        try:
            self.store.save(period, used)
        except StorageError as e:
            logger.warning(
                "Could not persist cloud OCR usage; quota not updated this time",
                period=period,
                error=str(e),
            )
            return False
        return True

    def status(self, period: str | None = None) -> QuotaState:
        period = self._period(period)
        return QuotaState(period=period, limit=self.limit, used=self._load_used(period))

    def allowed(self, period: str | None = None) -> bool:
        return self.status(period).allowed

    def increment(self, period: str | None = None) -> QuotaState:
        """Record one consumed cloud call. No-op on the counter when unlimited."""
        period = self._period(period)
        if self.limit == 0:
            return self.status(period)

        try:
            used = self.store.increment(period, self.limit)
        except StorageError as e:
            logger.warning(
                "Could not persist cloud OCR usage; quota not updated this time",
                period=period,
                error=str(e),
            )
            return self.status(period)
        used = max(0, min(int(used), self.limit))

        logger.info(
            "Cloud OCR usage recorded",
            period=period,
            used=used,
            limit=self.limit,
        )
        return QuotaState(period=period, limit=self.limit, used=used)

    def set_remaining(self, value: int, period: str | None = None) -> QuotaState:
        """
        Administrative override: set how many calls remain this period.

        The value is clamped to [0, limit]; it has no effect when unlimited.
        """
        state = self.status(period)
        if state.unlimited:
            return state

        remaining = max(0, min(int(value), self.limit))
        used = self.limit - remaining
        if not self._save_used(state.period, used):
            return state

        logger.info(
            "Cloud OCR remaining calls overridden",
            period=state.period,
            remaining=remaining,
            limit=self.limit,
        )
        return QuotaState(period=state.period, limit=self.limit, used=used)
