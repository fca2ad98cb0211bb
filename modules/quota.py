"""
Daily analysis quota — process-wide soft limit on successful model calls.

The counter resets lazily the first time it is consulted on a new
calendar day (server local date). It lives in process memory, so
restarts and multiple instances each keep their own count: this is a
safety valve against runaway cost, not an accounting ledger.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date
from typing import Callable, Protocol

from modules.errors import QuotaExceededError

logger = logging.getLogger(__name__)

ANALYSIS_DAILY_LIMIT = int(os.getenv("ANALYSIS_DAILY_LIMIT", "50"))

QUOTA_EXCEEDED_MESSAGE = (
    "The daily limit of AI analyses has been reached. Please try again tomorrow."
)


@dataclass(frozen=True)
class QuotaSnapshot:
    limit: int
    used: int
    day: date

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


class QuotaCounter(Protocol):
    """Contract the proxy relies on; swap in a durable store behind it."""

    def check(self) -> None: ...

    def record_success(self) -> None: ...

    def snapshot(self) -> QuotaSnapshot: ...


class DailyQuota:
    """In-memory ``QuotaCounter`` with a new-day reset rule.

    Args:
        limit: Successful analyses allowed per calendar day.
        today: Clock returning the current local date (injectable for tests).
    """

    def __init__(
        self,
        limit: int = ANALYSIS_DAILY_LIMIT,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.limit = limit
        self._today = today
        self.count = 0
        self.last_reset = today()

    def _roll_over(self) -> None:
        current = self._today()
        if current != self.last_reset:
            logger.info(
                "Quota reset for %s (was %d/%d on %s)",
                current, self.count, self.limit, self.last_reset,
            )
            self.count = 0
            self.last_reset = current

    def check(self) -> None:
        """Raise ``QuotaExceededError`` when today's ceiling is reached."""
        self._roll_over()
        if self.count >= self.limit:
            logger.warning("Daily analysis quota exhausted (%d/%d)", self.count, self.limit)
            raise QuotaExceededError(QUOTA_EXCEEDED_MESSAGE)

    def record_success(self) -> None:
        self._roll_over()
        self.count += 1
        logger.info("Analysis quota used: %d/%d", self.count, self.limit)

    def snapshot(self) -> QuotaSnapshot:
        self._roll_over()
        return QuotaSnapshot(limit=self.limit, used=self.count, day=self.last_reset)
