"""Bounded-concurrency fan-out of per-key sub-fetches with failure isolation."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Generic, Hashable, List, Optional, Sequence, TypeVar

from .errors import CancelledError
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")

DEFAULT_BATCH_WIDTH = 15
LOW_QUOTA_FRACTION = 0.10


def create_batches(items: Sequence[K], size: int) -> List[List[K]]:
    """Split ``items`` into consecutive batches of at most ``size`` elements."""
    if size <= 0:
        raise ValueError("Batch size must be greater than 0.")
    return [list(items[index : index + size]) for index in range(0, len(items), size)]


@dataclass(frozen=True)
class FanoutFailure(Generic[K]):
    """One failed sub-fetch and the error it raised."""

    key: K
    error: Exception


@dataclass
class FanoutResult(Generic[K, T]):
    """Records from succeeding sub-fetches plus one failure per failing key."""

    records: List[T] = field(default_factory=list)
    errors: List[FanoutFailure[K]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """True when any records were collected or nothing failed."""
        return bool(self.records) or not self.errors


class BatchFanout:
    """Runs one sub-fetch per key, ``width`` at a time, isolating failures.

    Before each batch the cancellation signal is checked and, when less than
    10% of the quota remains, the rate limiter paces the batch. Sub-fetches in
    a batch run concurrently; a failing sub-fetch is recorded and never aborts
    its siblings or later batches.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        width: int = DEFAULT_BATCH_WIDTH,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        if width <= 0:
            raise ValueError("Fan-out width must be greater than 0.")
        self._rate_limiter = rate_limiter
        self._width = width
        self._cancel_event = cancel_event

    def _check_cancelled(self, result: FanoutResult, completed_batches: int) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise CancelledError(
                f"Fan-out cancelled after {completed_batches} batch(es).",
                partial_records=result.records,
            )

    def run(self, keys: Sequence[K], fetch_one: Callable[[K], List[T]]) -> FanoutResult[K, T]:
        """Fetch records for every key and partition the outcomes.

        Args:
            keys: Sub-resource keys, for example pull request numbers.
            fetch_one: Callable returning all records for one key; it may
                paginate internally.

        Returns:
            A ``FanoutResult`` with records concatenated in completion order.

        Raises:
            CancelledError: If the cancellation signal is observed between batches.
        """
        result: FanoutResult[K, T] = FanoutResult()
        batches = create_batches(keys, self._width)

        for batch_index, batch in enumerate(batches):
            self._check_cancelled(result, batch_index)

            if self._rate_limiter.remaining_fraction() < LOW_QUOTA_FRACTION:
                self._rate_limiter.pace_low_budget()

            with ThreadPoolExecutor(max_workers=min(self._width, len(batch))) as executor:
                futures_to_key = {executor.submit(fetch_one, key): key for key in batch}

                for future in as_completed(futures_to_key):
                    key = futures_to_key[future]
                    try:
                        result.records.extend(future.result())
                    except Exception as exc:  # noqa: BLE001
                        logger.warning(
                            "Sub-fetch failed",
                            extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
                        )
                        result.errors.append(FanoutFailure(key=key, error=exc))

            logger.debug(
                "Completed fan-out batch",
                extra={"batch": batch_index + 1, "batches": len(batches), "records": len(result.records)},
            )

        self._check_cancelled(result, len(batches))

        logger.info(
            "Fan-out finished",
            extra={"keys": len(keys), "records": len(result.records), "failures": len(result.errors)},
        )
        return result
