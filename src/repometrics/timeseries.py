"""Weekly change-volume timeseries with trend and outlier detection."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .models import PullRequest
from .stats import mean, population_stddev

logger = logging.getLogger(__name__)

MIN_WEEKS_FOR_ANALYSIS = 4
TREND_THRESHOLD_PERCENT = 10.0
OUTLIER_STDDEV_MULTIPLIER = 2.0


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass(frozen=True, slots=True)
class WeeklyAggregate:
    """Change volume of the PRs merged in one ISO week (Monday to Sunday, UTC)."""

    week_start: datetime
    week_end: datetime
    additions: int
    deletions: int
    total_changes: int
    net_change: int
    pr_count: int
    average_pr_size: float
    changed_files_total: int


@dataclass(frozen=True, slots=True)
class ChangeTrend:
    direction: TrendDirection
    percent_change: float
    analyzed_weeks: int
    start_value: float
    end_value: float


@dataclass(frozen=True, slots=True)
class OutlierWeek:
    week_start: datetime
    total_changes: int
    pr_count: int
    z_score: float
    mean_value: float
    std_deviation: float


@dataclass(frozen=True, slots=True)
class TimeseriesSummary:
    total_prs: int = 0
    total_additions: int = 0
    total_deletions: int = 0
    average_weekly_changes: float = 0.0
    average_pr_size: float = 0.0
    weeks_analyzed: int = 0


@dataclass(frozen=True, slots=True)
class TimeseriesResult:
    weekly_data: List[WeeklyAggregate]
    trend: Optional[ChangeTrend]
    outlier_weeks: List[OutlierWeek]
    summary: TimeseriesSummary


def week_start_of(moment: datetime) -> datetime:
    """Return Monday 00:00 UTC of the ISO week containing ``moment``."""
    utc_moment = moment.astimezone(timezone.utc)
    monday = utc_moment - timedelta(days=utc_moment.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def _has_change_data(pr: PullRequest) -> bool:
    return (
        pr.is_merged
        and pr.merged_at is not None
        and pr.additions is not None
        and pr.deletions is not None
        and pr.changed_files is not None
    )


def _aggregate_week(week_start: datetime, prs: Sequence[PullRequest]) -> WeeklyAggregate:
    additions = sum(pr.additions or 0 for pr in prs)
    deletions = sum(pr.deletions or 0 for pr in prs)
    total_changes = additions + deletions
    return WeeklyAggregate(
        week_start=week_start,
        week_end=week_start + timedelta(days=7) - timedelta(microseconds=1),
        additions=additions,
        deletions=deletions,
        total_changes=total_changes,
        net_change=additions - deletions,
        pr_count=len(prs),
        average_pr_size=total_changes / len(prs) if prs else 0.0,
        changed_files_total=sum(pr.changed_files or 0 for pr in prs),
    )


def detect_trend(weekly_data: Sequence[WeeklyAggregate]) -> Optional[ChangeTrend]:
    """Compare average weekly changes in the first half against the second half.

    A relative change of at least 10% is a trend; anything smaller is stable.
    Returns ``None`` with fewer than four weeks.
    """
    if len(weekly_data) < MIN_WEEKS_FOR_ANALYSIS:
        return None

    midpoint = len(weekly_data) // 2
    start_value = mean([week.total_changes for week in weekly_data[:midpoint]])
    end_value = mean([week.total_changes for week in weekly_data[midpoint:]])
    delta = end_value - start_value
    percent_change = abs(delta / start_value) * 100.0 if start_value else 0.0

    if percent_change >= TREND_THRESHOLD_PERCENT:
        direction = TrendDirection.INCREASING if delta >= 0 else TrendDirection.DECREASING
    else:
        direction = TrendDirection.STABLE

    return ChangeTrend(
        direction=direction,
        percent_change=percent_change,
        analyzed_weeks=len(weekly_data),
        start_value=start_value,
        end_value=end_value,
    )


def detect_outliers(weekly_data: Sequence[WeeklyAggregate]) -> List[OutlierWeek]:
    """Flag weeks whose total changes exceed the mean by more than two standard deviations."""
    if len(weekly_data) < MIN_WEEKS_FOR_ANALYSIS:
        return []

    totals = [float(week.total_changes) for week in weekly_data]
    mean_value = mean(totals)
    std_deviation = population_stddev(totals)
    if std_deviation == 0:
        return []

    threshold = mean_value + OUTLIER_STDDEV_MULTIPLIER * std_deviation
    return [
        OutlierWeek(
            week_start=week.week_start,
            total_changes=week.total_changes,
            pr_count=week.pr_count,
            z_score=(week.total_changes - mean_value) / std_deviation,
            mean_value=mean_value,
            std_deviation=std_deviation,
        )
        for week in weekly_data
        if week.total_changes > threshold
    ]


def analyze_timeseries(pull_requests: Sequence[PullRequest]) -> TimeseriesResult:
    """Build the weekly change series for merged PRs and analyze it.

    PRs without ``merged_at`` or any size field are excluded without error.
    Weeks with no merged PRs are omitted from the series.
    """
    eligible = [pr for pr in pull_requests if _has_change_data(pr)]
    prs_by_week: Dict[datetime, List[PullRequest]] = defaultdict(list)
    for pr in eligible:
        prs_by_week[week_start_of(pr.merged_at)].append(pr)  # type: ignore[arg-type]

    weekly_data = [_aggregate_week(week, prs_by_week[week]) for week in sorted(prs_by_week)]

    total_additions = sum(week.additions for week in weekly_data)
    total_deletions = sum(week.deletions for week in weekly_data)
    total_changes = total_additions + total_deletions
    summary = TimeseriesSummary(
        total_prs=len(eligible),
        total_additions=total_additions,
        total_deletions=total_deletions,
        average_weekly_changes=total_changes / len(weekly_data) if weekly_data else 0.0,
        average_pr_size=total_changes / len(eligible) if eligible else 0.0,
        weeks_analyzed=len(weekly_data),
    )

    result = TimeseriesResult(
        weekly_data=weekly_data,
        trend=detect_trend(weekly_data),
        outlier_weeks=detect_outliers(weekly_data),
        summary=summary,
    )

    logger.info(
        "Analyzed change timeseries",
        extra={
            "eligible_prs": len(eligible),
            "excluded_prs": len(pull_requests) - len(eligible),
            "weeks": len(weekly_data),
            "outliers": len(result.outlier_weeks),
        },
    )
    return result
