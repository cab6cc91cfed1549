"""Quota-aware pacing for GitHub GraphQL calls.

One ``RateLimiter`` is created per analysis run and passed to every component
that issues quota-consuming requests. Each response replaces the tracked
quota status; nothing is merged across responses.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from .models import QuotaStatus

logger = logging.getLogger(__name__)

_COMFORTABLE_REMAINING = 100
_SPREAD_REMAINING = 10


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    """Tracks the latest quota status and computes the wait before the next call."""

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._status: Optional[QuotaStatus] = None
        self._request_count = 0

    @property
    def status(self) -> Optional[QuotaStatus]:
        with self._lock:
            return self._status

    @property
    def request_count(self) -> int:
        """Number of quota updates recorded since creation or the last reset."""
        with self._lock:
            return self._request_count

    def update(self, status: Optional[QuotaStatus]) -> None:
        """Replace the tracked quota status with the latest reported one."""
        if status is None:
            return
        with self._lock:
            self._status = status
            self._request_count += 1
        logger.debug(
            "Updated rate limit status",
            extra={"remaining": status.remaining, "limit": status.limit, "reset_at": status.reset_at.isoformat()},
        )

    def time_until_reset(self) -> float:
        """Seconds until the quota window resets; ``0`` when unknown or already passed."""
        status = self.status
        if status is None:
            return 0.0
        return max(0.0, (status.reset_at - self._clock()).total_seconds())

    def delay_before_next_call(self) -> float:
        """Compute the delay in seconds to apply before the next quota-consuming call.

        Policy:
        - No status yet: no delay.
        - ``remaining > 100``: no delay.
        - ``0 < remaining <= 10``: spread the last calls evenly over the reset
          window, ``time_until_reset / (remaining + 1)``.
        - ``10 < remaining <= 100``: no delay.
        - ``remaining == 0``: wait for the full reset window.
        """
        status = self.status
        if status is None or status.remaining > _COMFORTABLE_REMAINING:
            return 0.0

        until_reset = self.time_until_reset()
        if status.remaining <= 0:
            return until_reset
        if status.remaining <= _SPREAD_REMAINING:
            return until_reset / (status.remaining + 1)
        return 0.0

    def wait_if_needed(self) -> float:
        """Sleep for the computed delay and return the number of seconds waited."""
        delay = self.delay_before_next_call()
        if delay > 0:
            logger.warning(
                "Rate limit nearly exhausted, waiting before next request",
                extra={"delay_seconds": round(delay, 3), "status": self.status_message()},
            )
            time.sleep(delay)
        return delay

    def pace_low_budget(self) -> float:
        """Sleep for one evenly spread slice of the reset window.

        Used ahead of a concurrent batch when the remaining budget is low, so a
        batch is not issued all at once against a nearly empty quota.
        """
        status = self.status
        if status is None:
            return 0.0
        delay = self.time_until_reset() / (max(0, status.remaining) + 1)
        if delay > 0:
            logger.warning(
                "Low remaining quota, pacing before next batch",
                extra={"delay_seconds": round(delay, 3), "status": self.status_message()},
            )
            time.sleep(delay)
        return delay

    def remaining_fraction(self) -> float:
        """Fraction of the quota still available; ``1.0`` before the first response."""
        status = self.status
        if status is None or status.limit <= 0:
            return 1.0
        return status.remaining / status.limit

    def is_exhausted(self) -> bool:
        status = self.status
        return status is not None and status.remaining <= 0

    def status_message(self) -> str:
        """Human-readable summary of the current quota status."""
        status = self.status
        if status is None:
            return "Rate limit: no data yet"

        percentage = round(self.remaining_fraction() * 100)
        minutes = math.ceil(self.time_until_reset() / 60)
        return (
            f"Rate limit: {status.remaining}/{status.limit} requests remaining "
            f"({percentage}%), resets in {minutes} minutes"
        )

    def reset(self) -> None:
        """Forget the tracked status and request count."""
        with self._lock:
            self._status = None
            self._request_count = 0
