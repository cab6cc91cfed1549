"""Tests for weekly change-volume timeseries analysis."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repometrics.models import PullRequest
from repometrics.timeseries import TrendDirection, analyze_timeseries, week_start_of

MONDAY = datetime(2026, 1, 5, tzinfo=timezone.utc)


def _merged(
    number: int, merged_at: datetime, additions: int, deletions: int = 0, changed_files: int = 1
) -> PullRequest:
    return PullRequest(
        number=number,
        title=f"PR {number}",
        author="alice",
        created_at=merged_at - timedelta(hours=1),
        state="merged",
        merged_at=merged_at,
        additions=additions,
        deletions=deletions,
        changed_files=changed_files,
    )


def _weekly_series(totals):
    return [
        _merged(index + 1, MONDAY + timedelta(weeks=index, days=2), additions=total)
        for index, total in enumerate(totals)
    ]


def test_week_start_is_monday_midnight_utc():
    """Verify week grouping uses ISO weeks starting Monday 00:00 UTC."""
    sunday_night = datetime(2026, 1, 11, 23, 30, tzinfo=timezone.utc)
    monday_morning = datetime(2026, 1, 12, 0, 30, tzinfo=timezone.utc)

    assert week_start_of(sunday_night) == MONDAY
    assert week_start_of(monday_morning) == MONDAY + timedelta(weeks=1)


def test_weekly_aggregates_are_chronological_and_sparse():
    """Verify one aggregate per non-empty week, sorted by week start."""
    prs = [
        _merged(1, MONDAY + timedelta(weeks=3), additions=30, deletions=10, changed_files=2),
        _merged(2, MONDAY + timedelta(days=1), additions=10, deletions=5, changed_files=1),
        _merged(3, MONDAY + timedelta(days=3), additions=20, deletions=5, changed_files=4),
    ]

    result = analyze_timeseries(prs)

    assert [week.week_start for week in result.weekly_data] == [MONDAY, MONDAY + timedelta(weeks=3)]
    first = result.weekly_data[0]
    assert first.additions == 30
    assert first.deletions == 10
    assert first.total_changes == 40
    assert first.net_change == 20
    assert first.pr_count == 2
    assert first.average_pr_size == pytest.approx(20.0)
    assert first.changed_files_total == 5
    assert first.week_end == MONDAY + timedelta(days=7) - timedelta(microseconds=1)


def test_prs_missing_change_data_are_excluded_without_error():
    """Verify unmerged or incomplete PRs are skipped silently."""
    incomplete = PullRequest(
        number=9, title="t", author="bob", created_at=MONDAY, state="merged", merged_at=MONDAY, additions=5
    )
    open_pr = PullRequest(number=10, title="t", author="bob", created_at=MONDAY, state="open")

    result = analyze_timeseries([incomplete, open_pr, _merged(1, MONDAY, additions=5)])

    assert result.summary.total_prs == 1


def test_closed_pr_with_merge_timestamp_is_excluded():
    """Verify only PRs in the merged state count, matching the throughput filter."""
    closed = PullRequest(
        number=11,
        title="t",
        author="bob",
        created_at=MONDAY,
        state="closed",
        merged_at=MONDAY,
        additions=500,
        deletions=0,
        changed_files=1,
    )

    result = analyze_timeseries([closed, _merged(1, MONDAY, additions=5)])

    assert result.summary.total_prs == 1
    assert result.summary.total_additions == 5


def test_empty_input_yields_empty_series():
    """Verify zero merged PRs is not an error."""
    result = analyze_timeseries([])

    assert result.weekly_data == []
    assert result.trend is None
    assert result.outlier_weeks == []
    assert result.summary.weeks_analyzed == 0


def test_fewer_than_four_weeks_has_no_trend():
    """Verify trend detection needs four weeks of data."""
    result = analyze_timeseries(_weekly_series([100, 200, 300]))

    assert result.trend is None


def test_increasing_trend():
    """Verify second-half growth of 10% or more is increasing."""
    trend = analyze_timeseries(_weekly_series([100, 100, 200, 200])).trend

    assert trend.direction == TrendDirection.INCREASING
    assert trend.percent_change == pytest.approx(100.0)
    assert trend.start_value == pytest.approx(100.0)
    assert trend.end_value == pytest.approx(200.0)
    assert trend.analyzed_weeks == 4


def test_decreasing_trend():
    """Verify a second-half drop of 10% or more is decreasing."""
    trend = analyze_timeseries(_weekly_series([200, 200, 100, 100])).trend

    assert trend.direction == TrendDirection.DECREASING
    assert trend.percent_change == pytest.approx(50.0)


def test_small_change_is_stable():
    """Verify changes under 10% are stable."""
    trend = analyze_timeseries(_weekly_series([100, 100, 105, 105])).trend

    assert trend.direction == TrendDirection.STABLE


def test_high_outlier_week_is_flagged():
    """Verify a week above mean + 2 standard deviations is an outlier."""
    result = analyze_timeseries(_weekly_series([100] * 9 + [1000]))

    assert len(result.outlier_weeks) == 1
    outlier = result.outlier_weeks[0]
    assert outlier.total_changes == 1000
    assert outlier.mean_value == pytest.approx(190.0)
    assert outlier.std_deviation == pytest.approx(270.0)
    assert outlier.z_score == pytest.approx(3.0)


def test_uniform_weeks_have_no_outliers():
    """Verify zero spread yields no outliers."""
    result = analyze_timeseries(_weekly_series([50] * 6))

    assert result.outlier_weeks == []


def test_summary_totals():
    """Verify the summary aggregates the whole series."""
    result = analyze_timeseries(_weekly_series([100, 300]))

    assert result.summary.total_prs == 2
    assert result.summary.total_additions == 400
    assert result.summary.average_weekly_changes == pytest.approx(200.0)
    assert result.summary.average_pr_size == pytest.approx(200.0)
