"""Statistics and formatting helpers for repository metrics reporting.

This module provides utilities for:
- Computing linear-interpolation percentiles from pre-sorted samples.
- Means and population standard deviations that tolerate empty input.
- Formatting second-based durations as ``HH:MM:SS``.
- Building a human-readable report for a full repository analysis.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, cast

if TYPE_CHECKING:
    from .engine import RepositoryAnalysis

TOP_CONTRIBUTORS_IN_REPORT = 10


def calculate_percentile(sorted_values: Sequence[float], p: float) -> Optional[float]:
    """Calculate a percentile using linear interpolation.

    The input sequence is expected to already be sorted in ascending order.
    - Empty input returns ``None``.
    - ``p <= 0`` returns the first value.
    - ``p >= 100`` returns the last value.
    - Otherwise, percentile is linearly interpolated between adjacent ranks,
      so ``p = 50`` is the true median (mean of the two middle values for
      even-sized input).

    Raises:
        ValueError: If ``p`` is outside ``[0, 100]``.
    """
    if not 0 <= p <= 100:
        raise ValueError("Percentile 'p' must be in the range [0, 100].")

    if not sorted_values:
        return None

    if p <= 0:
        return sorted_values[0]

    if p >= 100:
        return sorted_values[-1]

    position = (len(sorted_values) - 1) * (p / 100.0)
    lower_index = math.floor(position)
    upper_index = math.ceil(position)

    if lower_index == upper_index:
        return sorted_values[int(position)]

    lower_value = sorted_values[lower_index]
    upper_value = sorted_values[upper_index]
    return lower_value + (upper_value - lower_value) * (position - lower_index)


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean; ``0.0`` for empty input."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def population_stddev(values: Sequence[float]) -> float:
    """Population standard deviation; ``0.0`` for empty input."""
    if not values:
        return 0.0
    average = mean(values)
    return math.sqrt(sum((value - average) ** 2 for value in values) / len(values))


def compute_statistics(samples: List[float]) -> Dict[str, Optional[float]]:
    """Compute P50, P75, P90, and sample count for duration samples.

    ``None``, NaN and negative values are ignored.
    """
    clean_samples = sorted(
        sample
        for sample in samples
        if sample is not None and not math.isnan(sample) and sample >= 0
    )

    return {
        "p50": calculate_percentile(clean_samples, 50),
        "p75": calculate_percentile(clean_samples, 75),
        "p90": calculate_percentile(clean_samples, 90),
        "count": cast(Optional[float], len(clean_samples)),
    }


def format_duration(seconds: Optional[float]) -> str:
    """Format seconds as ``HH:MM:SS``; ``"n/a"`` when ``seconds`` is ``None``."""
    if seconds is None:
        return "n/a"

    total_seconds = int(round(seconds))
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    remaining_seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{remaining_seconds:02d}"


def _contributor_lines(analysis: "RepositoryAnalysis") -> List[str]:
    ranked = sorted(
        analysis.contributors,
        key=lambda contributor: contributor.activity_score + contributor.review_score,
        reverse=True,
    )
    lines = [f"1) Contributors ({len(analysis.contributors)})"]
    for contributor in ranked[:TOP_CONTRIBUTORS_IN_REPORT]:
        activity = contributor.implementation_activity
        review = contributor.review_activity
        lines.append(
            f"   {contributor.display_name}: {activity.commit_count} commits, "
            f"+{activity.lines_added}/-{activity.lines_deleted} lines, "
            f"{review.pull_request_count} PRs, {review.review_comment_count} review comments "
            f"on {review.pull_requests_reviewed} PRs"
        )
    return lines


def _throughput_lines(analysis: "RepositoryAnalysis") -> List[str]:
    throughput = analysis.throughput
    if throughput is None:
        return ["2) PR Throughput", f"   Unavailable: {analysis.enrichment_errors.get('throughput', 'n/a')}"]

    lead_time_stats = compute_statistics([point.lead_time_hours * 3600 for point in throughput.scatter_data])
    lines = [
        "2) PR Throughput (Creation to Merge)",
        f"   Merged PRs: {throughput.total_merged_prs}",
        f"   Average: {format_duration(throughput.average_lead_time_hours * 3600)}",
        f"   P50: {format_duration(lead_time_stats['p50'])}",
        f"   P75: {format_duration(lead_time_stats['p75'])}",
        f"   P90: {format_duration(lead_time_stats['p90'])}",
    ]
    for summary in throughput.size_buckets:
        lines.append(
            f"   {summary.bucket.value:<2} ({summary.line_range} lines): {summary.pr_count} PRs "
            f"({summary.percentage:.0f}%), avg {format_duration(summary.average_lead_time_hours * 3600)}"
        )
    lines.append(f"   Insight: {throughput.insight.message}")
    return lines


def _timeseries_lines(analysis: "RepositoryAnalysis") -> List[str]:
    timeseries = analysis.timeseries
    if timeseries is None:
        return ["3) Weekly Changes", f"   Unavailable: {analysis.enrichment_errors.get('timeseries', 'n/a')}"]

    summary = timeseries.summary
    trend = timeseries.trend
    lines = [
        "3) Weekly Changes",
        f"   Weeks: {summary.weeks_analyzed}",
        f"   Average weekly changes: {summary.average_weekly_changes:.1f} lines",
        f"   Average PR size: {summary.average_pr_size:.1f} lines",
        "   Trend: "
        + (f"{trend.direction.value} ({trend.percent_change:.1f}%)" if trend is not None else "n/a"),
    ]
    for outlier in timeseries.outlier_weeks:
        lines.append(
            f"   Outlier week {outlier.week_start:%Y-%m-%d}: {outlier.total_changes} lines "
            f"(z={outlier.z_score:.2f})"
        )
    return lines


def _deployment_lines(analysis: "RepositoryAnalysis") -> List[str]:
    frequency = analysis.deployment_frequency
    if frequency is None:
        return [
            "4) Deployment Frequency",
            f"   Unavailable: {analysis.enrichment_errors.get('deployment_frequency', 'n/a')}",
        ]

    lines = [
        "4) Deployment Frequency",
        f"   Deployments: {frequency.total_deployments} over {frequency.period_days} days",
        f"   Per year: {frequency.deployments_per_year:.1f}",
        f"   DORA level: {frequency.dora_level.level.value}",
        f"   {frequency.dora_level.description}",
    ]
    for source, error in sorted(frequency.source_errors.items()):
        lines.append(f"   Warning: {source} unavailable ({error})")
    return lines


def generate_report(repo_name: str, analysis: "RepositoryAnalysis") -> str:
    """Generate a human-readable metrics report for a repository.

    Args:
        repo_name: Repository display name.
        analysis: Completed repository analysis.

    Returns:
        Formatted multi-line text report.
    """
    date_range = analysis.data.date_range
    lines = [
        f"Repository: {repo_name}",
        f"Period: {date_range.start:%Y-%m-%d} to {date_range.end:%Y-%m-%d}",
        "Repository Activity Report",
        "",
    ]
    lines.extend(_contributor_lines(analysis))
    lines.append("")
    lines.extend(_throughput_lines(analysis))
    lines.append("")
    lines.extend(_timeseries_lines(analysis))
    lines.append("")
    lines.extend(_deployment_lines(analysis))

    if analysis.data.comment_errors:
        lines.append("")
        lines.append(f"Note: review comments could not be fetched for {len(analysis.data.comment_errors)} PR(s).")

    return "\n".join(lines)
