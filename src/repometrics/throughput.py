"""Pull request throughput analysis: lead time, size buckets and sizing insight.

Lead time is the elapsed time from PR creation to merge. PR size is
``additions + deletions`` and is classified into four buckets:

- S: 1-50 lines
- M: 51-200 lines
- L: 201-500 lines
- XL: 501+ lines

Corrupt merged PR data (missing size fields, merge before creation) is a
fatal ``ValidationError`` for the whole analysis.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .errors import ValidationError
from .models import DateRange, PullRequest
from .stats import calculate_percentile, mean

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24.0
MIN_PRS_FOR_INSIGHT = 10
NO_DIFFERENCE_TOLERANCE = 1.2


class SizeBucket(str, Enum):
    S = "S"
    M = "M"
    L = "L"
    XL = "XL"

    @property
    def display_name(self) -> str:
        return _BUCKET_NAMES[self]

    @property
    def line_range(self) -> str:
        return _BUCKET_RANGES[self]


_BUCKET_NAMES = {
    SizeBucket.S: "Small",
    SizeBucket.M: "Medium",
    SizeBucket.L: "Large",
    SizeBucket.XL: "Extra Large",
}

_BUCKET_RANGES = {
    SizeBucket.S: "1-50",
    SizeBucket.M: "51-200",
    SizeBucket.L: "201-500",
    SizeBucket.XL: "501+",
}


def classify_size(size: int) -> SizeBucket:
    """Map a line count (additions + deletions) onto its size bucket."""
    if size <= 50:
        return SizeBucket.S
    if size <= 200:
        return SizeBucket.M
    if size <= 500:
        return SizeBucket.L
    return SizeBucket.XL


class InsightType(str, Enum):
    OPTIMAL = "optimal"
    NO_DIFFERENCE = "no_difference"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True, slots=True)
class ThroughputInsight:
    type: InsightType
    message: str
    optimal_bucket: Optional[SizeBucket] = None


@dataclass(frozen=True, slots=True)
class ScatterPoint:
    pr_number: int
    size: int
    lead_time_hours: float


@dataclass(frozen=True, slots=True)
class SizeBucketSummary:
    bucket: SizeBucket
    line_range: str
    pr_count: int
    average_lead_time_hours: float
    average_lead_time_days: float
    percentage: float


@dataclass(frozen=True, slots=True)
class ThroughputResult:
    """Lead time statistics and size bucket breakdown for merged pull requests."""

    repository_url: str
    date_range: DateRange
    total_merged_prs: int
    average_lead_time_hours: float
    average_lead_time_days: float
    median_lead_time_hours: float
    median_lead_time_days: float
    scatter_data: List[ScatterPoint]
    size_buckets: List[SizeBucketSummary]
    insight: ThroughputInsight


def _lead_time_hours(pr: PullRequest) -> float:
    """Validate a merged PR and return its lead time in hours.

    Raises:
        ValidationError: If any size field or ``merged_at`` is missing, a size
            field is negative, or the PR was merged before it was created.
    """
    missing = [
        label
        for label, value in (
            ("merged_at", pr.merged_at),
            ("additions", pr.additions),
            ("deletions", pr.deletions),
            ("changed_files", pr.changed_files),
        )
        if value is None
    ]
    if missing:
        raise ValidationError(f"Merged PR #{pr.number} is missing required fields: {', '.join(missing)}.")

    if min(pr.additions, pr.deletions, pr.changed_files) < 0:  # type: ignore[type-var]
        raise ValidationError(f"Merged PR #{pr.number} has negative change counts.")

    if pr.merged_at < pr.created_at:  # type: ignore[operator]
        raise ValidationError(f"Merged PR #{pr.number} has mergedAt before createdAt.")

    return (pr.merged_at - pr.created_at).total_seconds() / 3600.0  # type: ignore[operator]


def _build_insight(total: int, summaries: Sequence[SizeBucketSummary]) -> ThroughputInsight:
    """Classify whether PR size measurably affects lead time.

    Business logic:
    - Fewer than 10 merged PRs: insufficient data.
    - Among non-empty buckets, if the slowest average is within 20% of the
      fastest (or all are zero): no difference.
    - Otherwise the bucket with the lowest average lead time is optimal.
    """
    if total < MIN_PRS_FOR_INSIGHT:
        return ThroughputInsight(
            type=InsightType.INSUFFICIENT_DATA,
            message=(
                "Not enough data to determine optimal PR size. "
                f"Analyze at least {MIN_PRS_FOR_INSIGHT} merged PRs for meaningful insights."
            ),
        )

    populated = [summary for summary in summaries if summary.pr_count > 0]
    fastest = min(populated, key=lambda summary: summary.average_lead_time_hours)
    slowest_hours = max(summary.average_lead_time_hours for summary in populated)

    if slowest_hours <= fastest.average_lead_time_hours * NO_DIFFERENCE_TOLERANCE:
        return ThroughputInsight(
            type=InsightType.NO_DIFFERENCE,
            message=(
                "PR size has minimal impact on lead time. "
                "All size categories show similar merge speeds."
            ),
        )

    return ThroughputInsight(
        type=InsightType.OPTIMAL,
        message=(
            f"{fastest.bucket.display_name} PRs merge fastest on average. "
            "Consider breaking larger changes into smaller pull requests."
        ),
        optimal_bucket=fastest.bucket,
    )


def analyze_throughput(
    repository_url: str,
    pull_requests: Sequence[PullRequest],
    date_range: DateRange,
) -> ThroughputResult:
    """Compute lead time statistics and size bucket analysis for merged PRs.

    Args:
        repository_url: Repository URL recorded on the result.
        pull_requests: All fetched PRs; only merged ones are analyzed.
        date_range: Analysis window recorded on the result.

    Returns:
        A ``ThroughputResult``. With no merged PRs every statistic is zero and
        the insight is ``INSUFFICIENT_DATA``.

    Raises:
        ValidationError: If the repository URL is empty, the date range is
            inverted, or any merged PR is incomplete or inconsistent.
    """
    if not repository_url or not repository_url.strip():
        raise ValidationError("Repository URL cannot be empty.")

    if date_range.end < date_range.start:
        raise ValidationError("Date range end must not be before its start.")

    merged = [pr for pr in pull_requests if pr.is_merged]
    scatter_data: List[ScatterPoint] = []
    lead_times_by_bucket: Dict[SizeBucket, List[float]] = {bucket: [] for bucket in SizeBucket}

    for pr in merged:
        lead_time = _lead_time_hours(pr)
        size = int(pr.additions) + int(pr.deletions)  # type: ignore[arg-type]
        scatter_data.append(ScatterPoint(pr_number=pr.number, size=size, lead_time_hours=lead_time))
        lead_times_by_bucket[classify_size(size)].append(lead_time)

    total = len(scatter_data)
    lead_times = sorted(point.lead_time_hours for point in scatter_data)
    average_hours = mean(lead_times)
    median_hours = calculate_percentile(lead_times, 50) or 0.0

    summaries: List[SizeBucketSummary] = []
    for bucket in SizeBucket:
        bucket_lead_times = lead_times_by_bucket[bucket]
        bucket_average = mean(bucket_lead_times)
        summaries.append(
            SizeBucketSummary(
                bucket=bucket,
                line_range=bucket.line_range,
                pr_count=len(bucket_lead_times),
                average_lead_time_hours=bucket_average,
                average_lead_time_days=bucket_average / HOURS_PER_DAY,
                percentage=(len(bucket_lead_times) / total * 100.0) if total else 0.0,
            )
        )

    insight = _build_insight(total, summaries)

    logger.info(
        "Analyzed PR throughput",
        extra={
            "repository_url": repository_url,
            "merged_prs": total,
            "average_lead_time_hours": round(average_hours, 2),
            "insight": insight.type.value,
        },
    )

    return ThroughputResult(
        repository_url=repository_url,
        date_range=date_range,
        total_merged_prs=total,
        average_lead_time_hours=average_hours,
        average_lead_time_days=average_hours / HOURS_PER_DAY,
        median_lead_time_hours=median_hours,
        median_lead_time_days=median_hours / HOURS_PER_DAY,
        scatter_data=scatter_data,
        size_buckets=summaries,
        insight=insight,
    )
