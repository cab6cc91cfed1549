"""Tests for PR throughput analysis."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repometrics.errors import ValidationError
from repometrics.models import DateRange, PullRequest
from repometrics.throughput import InsightType, SizeBucket, analyze_throughput, classify_size

START = datetime(2026, 1, 1, tzinfo=timezone.utc)
RANGE = DateRange(start=START, end=START + timedelta(days=90))
URL = "https://github.com/octo/widgets"


def _merged(number: int, lead_hours: float, additions: int = 10, deletions: int = 5, **overrides) -> PullRequest:
    created_at = START + timedelta(days=number % 30)
    fields = dict(
        number=number,
        title=f"PR {number}",
        author="alice",
        created_at=created_at,
        state="merged",
        merged_at=created_at + timedelta(hours=lead_hours),
        additions=additions,
        deletions=deletions,
        changed_files=1,
    )
    fields.update(overrides)
    return PullRequest(**fields)


def test_three_prs_of_24_hours():
    """Verify average = median = 24h with four buckets and three scatter points."""
    result = analyze_throughput(URL, [_merged(1, 24), _merged(2, 24), _merged(3, 24)], RANGE)

    assert result.total_merged_prs == 3
    assert result.average_lead_time_hours == pytest.approx(24.0)
    assert result.median_lead_time_hours == pytest.approx(24.0)
    assert result.average_lead_time_days == pytest.approx(1.0)
    assert len(result.size_buckets) == 4
    assert len(result.scatter_data) == 3


def test_empty_input_yields_zeros_and_insufficient_data():
    """Verify no PRs produce zero statistics without error."""
    result = analyze_throughput(URL, [], RANGE)

    assert result.total_merged_prs == 0
    assert result.average_lead_time_hours == 0
    assert result.median_lead_time_hours == 0
    assert result.insight.type == InsightType.INSUFFICIENT_DATA
    assert result.insight.optimal_bucket is None
    assert [bucket.pr_count for bucket in result.size_buckets] == [0, 0, 0, 0]


def test_median_of_even_count_is_mean_of_middle_values():
    """Verify the median is the true median for even-sized input."""
    prs = [_merged(1, 1), _merged(2, 3), _merged(3, 5), _merged(4, 100)]

    result = analyze_throughput(URL, prs, RANGE)

    assert result.median_lead_time_hours == pytest.approx(4.0)
    assert result.average_lead_time_hours == pytest.approx(27.25)


def test_non_merged_prs_are_ignored():
    """Verify open and closed PRs do not count toward throughput."""
    open_pr = PullRequest(number=9, title="wip", author="bob", created_at=START, state="open")

    result = analyze_throughput(URL, [open_pr, _merged(1, 10)], RANGE)

    assert result.total_merged_prs == 1


def test_bucket_counts_sum_to_total_and_boundaries_classify():
    """Verify size thresholds and that bucket counts add up."""
    prs = [
        _merged(1, 5, additions=50, deletions=0),
        _merged(2, 5, additions=51, deletions=0),
        _merged(3, 5, additions=150, deletions=50),
        _merged(4, 5, additions=300, deletions=200),
        _merged(5, 5, additions=501, deletions=0),
    ]

    result = analyze_throughput(URL, prs, RANGE)

    counts = {bucket.bucket: bucket.pr_count for bucket in result.size_buckets}
    assert counts == {SizeBucket.S: 1, SizeBucket.M: 2, SizeBucket.L: 1, SizeBucket.XL: 1}
    assert sum(counts.values()) == result.total_merged_prs
    assert sum(bucket.percentage for bucket in result.size_buckets) == pytest.approx(100.0)
    assert classify_size(0) == SizeBucket.S


def test_insight_names_fastest_bucket_when_difference_is_material():
    """Verify small PRs merging much faster produce an OPTIMAL insight."""
    prs = [_merged(i, 2, additions=10, deletions=0) for i in range(1, 7)]
    prs += [_merged(i, 48, additions=600, deletions=0) for i in range(7, 13)]

    result = analyze_throughput(URL, prs, RANGE)

    assert result.insight.type == InsightType.OPTIMAL
    assert result.insight.optimal_bucket == SizeBucket.S
    assert result.insight.message.startswith("Small PRs merge fastest")


def test_insight_reports_no_difference_when_buckets_are_close():
    """Verify similar lead times across buckets produce NO_DIFFERENCE."""
    prs = [_merged(i, 10, additions=10, deletions=0) for i in range(1, 7)]
    prs += [_merged(i, 11, additions=600, deletions=0) for i in range(7, 13)]

    result = analyze_throughput(URL, prs, RANGE)

    assert result.insight.type == InsightType.NO_DIFFERENCE
    assert result.insight.optimal_bucket is None


def test_fewer_than_ten_prs_is_insufficient_data():
    """Verify the insight needs at least ten merged PRs."""
    prs = [_merged(i, 1 if i < 5 else 100, additions=10 if i < 5 else 900) for i in range(1, 10)]

    result = analyze_throughput(URL, prs, RANGE)

    assert result.insight.type == InsightType.INSUFFICIENT_DATA


def test_merged_pr_missing_size_field_is_fatal():
    """Verify a merged PR without deletions aborts the analysis."""
    with pytest.raises(ValidationError):
        analyze_throughput(URL, [_merged(1, 5), _merged(2, 5, deletions=None)], RANGE)


def test_merged_before_created_is_fatal():
    """Verify inverted timestamps abort the analysis."""
    with pytest.raises(ValidationError):
        analyze_throughput(URL, [_merged(1, -1)], RANGE)


def test_empty_repository_url_is_rejected():
    """Verify the repository URL is required."""
    with pytest.raises(ValidationError):
        analyze_throughput("  ", [], RANGE)


def test_inverted_date_range_is_rejected():
    """Verify a date range ending before it starts cannot be built."""
    with pytest.raises(ValidationError):
        DateRange(start=START, end=START - timedelta(days=1))
