"""Cursor-driven pagination over GitHub GraphQL connections."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Generic, List, Optional, TypeVar

from .errors import CancelledError, UnknownError
from .models import Page
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaginatedFetcher(Generic[T]):
    """Fetches every page of one connection, in cursor order, under a shared rate limiter.

    Loop per page:
    - Check the cancellation signal.
    - Wait via the rate limiter.
    - Fetch the page and record the reported quota.
    - Map nodes to records (a mapper returning ``None`` drops the node).
    - Apply the optional ``include`` predicate and append.
    - Stop early when a date floor is set and any mapped record on the page is
      older than it (pages are sorted newest first); otherwise continue while
      the page reports a next page and a cursor.

    Errors raised by ``fetch_page`` propagate unchanged and discard accumulated
    pages. A node the mapper cannot read raises ``UnknownError``. Cancellation
    raises ``CancelledError`` carrying the records so far.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        map_node: Callable[[dict], Optional[T]],
        include: Optional[Callable[[T], bool]] = None,
        timestamp_of: Optional[Callable[[T], Optional[datetime]]] = None,
        floor: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
        operation: str = "records",
    ) -> None:
        self._rate_limiter = rate_limiter
        self._map_node = map_node
        self._include = include
        self._timestamp_of = timestamp_of
        self._floor = floor
        self._cancel_event = cancel_event
        self._operation = operation

    def _is_below_floor(self, record: T) -> bool:
        if self._floor is None or self._timestamp_of is None:
            return False
        timestamp = self._timestamp_of(record)
        return timestamp is not None and timestamp < self._floor

    def fetch_all(self, fetch_page: Callable[[Optional[str]], Page]) -> List[T]:
        """Drive ``fetch_page(cursor)`` until the connection is exhausted or the floor is reached."""
        records: List[T] = []
        cursor: Optional[str] = None
        pages = 0

        while True:
            if self._cancel_event is not None and self._cancel_event.is_set():
                raise CancelledError(
                    f"Fetching {self._operation} was cancelled after {pages} page(s).",
                    partial_records=records,
                )

            self._rate_limiter.wait_if_needed()
            page = fetch_page(cursor)
            self._rate_limiter.update(page.quota)
            pages += 1

            reached_floor = False
            for node in page.nodes:
                try:
                    record = self._map_node(node)
                except (KeyError, TypeError, ValueError) as exc:
                    raise UnknownError(
                        f"Malformed {self._operation} node on page {pages}: {exc}"
                    ) from exc
                if record is None:
                    continue
                if self._is_below_floor(record):
                    reached_floor = True
                if self._include is not None and not self._include(record):
                    continue
                records.append(record)

            logger.debug(
                "Fetched page",
                extra={
                    "operation": self._operation,
                    "page": pages,
                    "page_nodes": len(page.nodes),
                    "total": len(records),
                },
            )

            if reached_floor:
                logger.debug(
                    "Stopping pagination at date floor",
                    extra={"operation": self._operation, "page": pages},
                )
                break

            if not page.page_info.has_next_page or not page.page_info.end_cursor:
                break

            cursor = page.page_info.end_cursor

        return records
