"""Tests for cursor pagination with early termination and cancellation."""

import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repometrics.errors import CancelledError, NetworkError, UnknownError
from repometrics.models import Page, PageInfo, QuotaStatus
from repometrics.pagination import PaginatedFetcher
from repometrics.rate_limiter import RateLimiter

BASE = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _page(values, has_next=True, cursor="c", remaining=4000):
    quota = QuotaStatus(limit=5000, remaining=remaining, reset_at=BASE + timedelta(hours=1))
    return Page(
        nodes=[{"value": value} for value in values],
        page_info=PageInfo(has_next_page=has_next, end_cursor=cursor if has_next else None),
        quota=quota,
    )


def _limiter() -> Mock:
    limiter = Mock(spec=RateLimiter)
    limiter.wait_if_needed.return_value = 0
    return limiter


def test_fetch_all_follows_cursors_until_last_page():
    """Verify pages are fetched in cursor order and records accumulated."""
    limiter = _limiter()
    fetch_page = Mock(side_effect=[_page([1, 2], cursor="a"), _page([3], cursor="b"), _page([4], has_next=False)])
    fetcher = PaginatedFetcher(limiter, map_node=lambda node: node["value"])

    records = fetcher.fetch_all(fetch_page)

    assert records == [1, 2, 3, 4]
    assert [call.args[0] for call in fetch_page.call_args_list] == [None, "a", "b"]
    assert limiter.wait_if_needed.call_count == 3
    assert limiter.update.call_count == 3


def test_fetch_all_stops_when_next_page_has_no_cursor():
    """Verify pagination stops when hasNextPage is set but endCursor is missing."""
    page = Page(nodes=[{"value": 1}], page_info=PageInfo(has_next_page=True, end_cursor=None))
    fetch_page = Mock(return_value=page)

    records = PaginatedFetcher(_limiter(), map_node=lambda node: node["value"]).fetch_all(fetch_page)

    assert records == [1]
    fetch_page.assert_called_once()


def test_fetch_all_stops_early_when_page_contains_record_older_than_floor():
    """Verify no further pages are fetched once a record predates the date floor."""
    floor = BASE - timedelta(days=7)
    first = _page([BASE, BASE - timedelta(days=1)], cursor="a")
    second = _page([BASE - timedelta(days=5), BASE - timedelta(days=10)], cursor="b")
    third = _page([BASE - timedelta(days=20)], has_next=False)
    fetch_page = Mock(side_effect=[first, second, third])
    fetcher = PaginatedFetcher(
        _limiter(),
        map_node=lambda node: node["value"],
        include=lambda moment: moment >= floor,
        timestamp_of=lambda moment: moment,
        floor=floor,
    )

    records = fetcher.fetch_all(fetch_page)

    assert fetch_page.call_count == 2
    assert records == [BASE, BASE - timedelta(days=1), BASE - timedelta(days=5)]


def test_mapper_returning_none_drops_node():
    """Verify nodes mapped to None are skipped."""
    fetch_page = Mock(return_value=_page([1, 2, 3, 4], has_next=False))
    fetcher = PaginatedFetcher(_limiter(), map_node=lambda node: node["value"] if node["value"] % 2 else None)

    assert fetcher.fetch_all(fetch_page) == [1, 3]


def test_cancellation_before_next_page_raises_with_partial_records():
    """Verify a cancellation observed at a page boundary carries accumulated records."""
    cancel_event = threading.Event()

    def fetch_page(cursor):
        cancel_event.set()
        return _page([1, 2], cursor="a")

    fetcher = PaginatedFetcher(_limiter(), map_node=lambda node: node["value"], cancel_event=cancel_event)

    with pytest.raises(CancelledError) as exc_info:
        fetcher.fetch_all(fetch_page)

    assert exc_info.value.partial_records == [1, 2]


def test_fetch_error_aborts_whole_operation():
    """Verify a failing page propagates its classified error."""
    fetch_page = Mock(side_effect=[_page([1], cursor="a"), NetworkError("connection reset")])
    fetcher = PaginatedFetcher(_limiter(), map_node=lambda node: node["value"])

    with pytest.raises(NetworkError):
        fetcher.fetch_all(fetch_page)


def test_unreadable_node_raises_classified_error():
    """Verify a mapper failure on a malformed node surfaces as an UnknownError."""
    fetch_page = Mock(return_value=_page(["not-a-number"], has_next=False))
    fetcher = PaginatedFetcher(_limiter(), map_node=lambda node: int(node["value"]), operation="pull_requests")

    with pytest.raises(UnknownError) as exc_info:
        fetcher.fetch_all(fetch_page)

    assert "pull_requests" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_rate_limiter_receives_each_page_quota():
    """Verify the quota reported by every page is handed to the shared rate limiter."""
    limiter = RateLimiter(clock=lambda: BASE)
    fetch_page = Mock(side_effect=[_page([1], cursor="a", remaining=300), _page([2], has_next=False, remaining=299)])

    PaginatedFetcher(limiter, map_node=lambda node: node["value"]).fetch_all(fetch_page)

    assert limiter.status.remaining == 299
    assert limiter.request_count == 2
