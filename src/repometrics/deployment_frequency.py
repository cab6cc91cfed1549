"""Deployment frequency aggregation and DORA performance classification."""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .data_sources import RepositoryDataSource
from .deployments import DeploymentEvent, reconcile_deployments
from .errors import MetricsEngineError, UnknownError
from .models import RepositoryRef, Result
from .stats import mean

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30.44
DAYS_PER_YEAR = 365
RECENT_DEPLOYMENTS_LIMIT = 10
TREND_WINDOW_WEEKS = 4
TREND_SLOPE_THRESHOLD = 0.1
TREND_MIN_CONFIDENCE = 0.3


class DORALevel(str, Enum):
    ELITE = "elite"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True, slots=True)
class DORAPerformanceLevel:
    level: DORALevel
    deployments_per_year: float
    description: str
    benchmark_range: str
    improvement_suggestions: Tuple[str, ...] = ()

    @property
    def is_good(self) -> bool:
        return self.level in (DORALevel.ELITE, DORALevel.HIGH)


@dataclass(frozen=True, slots=True)
class WeeklyDeployments:
    week_key: str
    week_start_date: str
    deployment_count: int


@dataclass(frozen=True, slots=True)
class MonthlyDeployments:
    month_key: str
    month_name: str
    deployment_count: int


@dataclass(frozen=True, slots=True)
class DeploymentTrend:
    direction: str
    slope: float
    confidence: float
    moving_average: Tuple[float, ...]


@dataclass(frozen=True)
class DeploymentFrequencyResult:
    """Deployment cadence over the observed period and its DORA tier."""

    total_deployments: int
    deployments_per_year: float
    average_per_week: float
    average_per_month: float
    period_days: int
    dora_level: DORAPerformanceLevel
    weekly_data: List[WeeklyDeployments]
    monthly_data: List[MonthlyDeployments]
    recent_deployments: List[DeploymentEvent]
    trend_analysis: Optional[DeploymentTrend] = None
    source_errors: Dict[str, str] = field(default_factory=dict)


def classify_dora_level(total_deployments: int, deployments_per_year: float) -> DORAPerformanceLevel:
    """Map a yearly deployment rate onto the DORA performance tiers.

    Tiers: elite at 730+/year (2+ per day), high at 52+ (weekly), medium at
    12+ (monthly), low below that. No deployments is insufficient data.
    """
    rounded = round(deployments_per_year)
    if total_deployments == 0:
        return DORAPerformanceLevel(
            level=DORALevel.INSUFFICIENT_DATA,
            deployments_per_year=0.0,
            description="No deployment data available.",
            benchmark_range="0 deployments",
            improvement_suggestions=(
                "Start tracking deployments by creating GitHub Releases",
                "Tag your commits with semantic versioning (v1.0.0)",
                "Set up GitHub Actions to create Deployment events",
            ),
        )

    if deployments_per_year >= 730:
        return DORAPerformanceLevel(
            level=DORALevel.ELITE,
            deployments_per_year=deployments_per_year,
            description=(
                f"Elite performance! Your team deploys {rounded} times per year "
                f"({deployments_per_year / DAYS_PER_YEAR:.1f} per day)."
            ),
            benchmark_range="730+ deployments per year (2+ per day)",
        )

    if deployments_per_year >= 52:
        return DORAPerformanceLevel(
            level=DORALevel.HIGH,
            deployments_per_year=deployments_per_year,
            description=f"High performance! Deploying {rounded} times per year.",
            benchmark_range="52-729 deployments per year (1/week to <2/day)",
            improvement_suggestions=(
                "Consider increasing deployment frequency to reach elite level (2+ per day)",
                "Implement continuous deployment practices",
                "Automate more of your deployment pipeline",
            ),
        )

    if deployments_per_year >= 12:
        return DORAPerformanceLevel(
            level=DORALevel.MEDIUM,
            deployments_per_year=deployments_per_year,
            description=f"Medium performance. Deploying {rounded} times per year.",
            benchmark_range="12-51 deployments per year (1/month to <1/week)",
            improvement_suggestions=(
                "Increase deployment frequency by deploying smaller changes more often",
                "Improve CI/CD automation to reduce deployment friction",
                "Consider feature flags to decouple deployment from release",
                "Reduce batch sizes to enable more frequent deployments",
            ),
        )

    return DORAPerformanceLevel(
        level=DORALevel.LOW,
        deployments_per_year=deployments_per_year,
        description=f"Low performance. Only {rounded} deployments per year.",
        benchmark_range="1-11 deployments per year (<1/month)",
        improvement_suggestions=(
            "Establish a regular deployment cadence (at least monthly)",
            "Invest in CI/CD automation to make deployments easier",
            "Break down large changes into smaller, deployable increments",
            "Build confidence through automated testing",
            "Consider implementing continuous deployment",
        ),
    )


def week_key(moment: datetime) -> Tuple[str, datetime]:
    """Return the ISO week key (``2024-W03``) and its Monday for ``moment``."""
    utc_moment = moment.astimezone(timezone.utc)
    iso_year, iso_week, _ = utc_moment.isocalendar()
    monday = (utc_moment - timedelta(days=utc_moment.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
    return f"{iso_year}-W{iso_week:02d}", monday


def _aggregate_weekly(events: Sequence[DeploymentEvent]) -> List[WeeklyDeployments]:
    counts: Dict[str, int] = {}
    starts: Dict[str, datetime] = {}
    for event in events:
        key, monday = week_key(event.timestamp)
        counts[key] = counts.get(key, 0) + 1
        starts.setdefault(key, monday)

    return sorted(
        (
            WeeklyDeployments(week_key=key, week_start_date=starts[key].strftime("%Y-%m-%d"), deployment_count=count)
            for key, count in counts.items()
        ),
        key=lambda week: week.week_start_date,
    )


def _aggregate_monthly(events: Sequence[DeploymentEvent]) -> List[MonthlyDeployments]:
    counts: Dict[str, int] = {}
    names: Dict[str, str] = {}
    for event in events:
        utc_moment = event.timestamp.astimezone(timezone.utc)
        key = utc_moment.strftime("%Y-%m")
        counts[key] = counts.get(key, 0) + 1
        names.setdefault(key, f"{utc_moment.strftime('%B')} {utc_moment.year}")

    return [
        MonthlyDeployments(month_key=key, month_name=names[key], deployment_count=counts[key])
        for key in sorted(counts)
    ]


def moving_average(values: Sequence[float], window: int = TREND_WINDOW_WEEKS) -> List[float]:
    """Trailing moving average; early points average over the values available so far."""
    averages: List[float] = []
    for index in range(len(values)):
        averages.append(mean(values[max(0, index - window + 1) : index + 1]))
    return averages


def analyze_deployment_trend(
    weekly_data: Sequence[WeeklyDeployments], window: int = TREND_WINDOW_WEEKS
) -> DeploymentTrend:
    """Fit a least-squares line through the weekly moving average.

    The slope is in deployments per week per week; R-squared, clamped to
    ``[0, 1]``, is the confidence. A slope below 0.1 or a confidence below
    0.3 is reported as stable.
    """
    if len(weekly_data) < 2:
        return DeploymentTrend(direction="stable", slope=0.0, confidence=0.0, moving_average=())

    smoothed = moving_average([float(week.deployment_count) for week in weekly_data], window)
    count = len(smoothed)
    x_mean = (count - 1) / 2.0
    y_mean = mean(smoothed)

    numerator = sum((index - x_mean) * (value - y_mean) for index, value in enumerate(smoothed))
    denominator = sum((index - x_mean) ** 2 for index in range(count))
    slope = numerator / denominator if denominator else 0.0

    ss_total = sum((value - y_mean) ** 2 for value in smoothed)
    ss_residual = sum(
        (value - (y_mean + slope * (index - x_mean))) ** 2 for index, value in enumerate(smoothed)
    )
    r_squared = 1 - ss_residual / ss_total if ss_total else 0.0
    confidence = max(0.0, min(1.0, r_squared))

    if abs(slope) < TREND_SLOPE_THRESHOLD or confidence < TREND_MIN_CONFIDENCE:
        direction = "stable"
    elif slope > 0:
        direction = "increasing"
    else:
        direction = "decreasing"

    return DeploymentTrend(direction=direction, slope=slope, confidence=confidence, moving_average=tuple(smoothed))


def classify_deployment_frequency(
    events: Sequence[DeploymentEvent],
    source_errors: Optional[Dict[str, str]] = None,
) -> DeploymentFrequencyResult:
    """Aggregate reconciled deployment events and classify the DORA tier.

    Business logic:
    - The observed period spans oldest to newest event, rounded up to whole
      days, with a minimum of one day.
    - Yearly, weekly and monthly rates normalize the total over that period.
    - Trend analysis runs once at least four weeks contain deployments.
    """
    ordered = sorted(events, key=lambda event: event.timestamp, reverse=True)
    total = len(ordered)

    if total == 0:
        period_days = 0
        per_year = per_week = per_month = 0.0
    else:
        span_seconds = (ordered[0].timestamp - ordered[-1].timestamp).total_seconds()
        period_days = max(1, math.ceil(span_seconds / 86400))
        per_year = total / period_days * DAYS_PER_YEAR
        per_week = total / (period_days / DAYS_PER_WEEK)
        per_month = total / (period_days / DAYS_PER_MONTH)

    weekly_data = _aggregate_weekly(ordered)
    trend = analyze_deployment_trend(weekly_data) if len(weekly_data) >= TREND_WINDOW_WEEKS else None
    dora_level = classify_dora_level(total, per_year)

    logger.info(
        "Deployment frequency calculation complete",
        extra={
            "total_deployments": total,
            "dora_level": dora_level.level.value,
            "deployments_per_year": round(per_year),
        },
    )

    return DeploymentFrequencyResult(
        total_deployments=total,
        deployments_per_year=per_year,
        average_per_week=per_week,
        average_per_month=per_month,
        period_days=period_days,
        dora_level=dora_level,
        weekly_data=weekly_data,
        monthly_data=_aggregate_monthly(ordered),
        recent_deployments=ordered[:RECENT_DEPLOYMENTS_LIMIT],
        trend_analysis=trend,
        source_errors=dict(source_errors or {}),
    )


def compute_deployment_frequency(
    data_source: RepositoryDataSource,
    owner: str,
    repo: str,
    since_date: Optional[datetime] = None,
) -> Result[DeploymentFrequencyResult]:
    """Fetch releases, deployments and tags in parallel and classify the cadence.

    Each source is fetched independently. A failing source is logged and
    recorded in ``source_errors`` while the remaining sources are still used.
    The call fails only when all three sources fail.

    Args:
        data_source: Source of releases, deployments and tags.
        owner: Repository owner login.
        repo: Repository name.
        since_date: Optional lower bound for deployment timestamps.

    Returns:
        ``Result`` wrapping a ``DeploymentFrequencyResult``.
    """
    repository = RepositoryRef(owner=owner, name=repo)
    fetchers: Dict[str, Callable[[], list]] = {
        "releases": lambda: data_source.fetch_releases(repository, since_date),
        "deployments": lambda: data_source.fetch_deployments(repository, since_date),
        "tags": lambda: data_source.fetch_tags(repository, since_date),
    }

    fetched: Dict[str, list] = {}
    failures: Dict[str, Exception] = {}

    with ThreadPoolExecutor(max_workers=len(fetchers)) as executor:
        futures = {source: executor.submit(fetch) for source, fetch in fetchers.items()}
        for source, future in futures.items():
            try:
                fetched[source] = future.result()
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Failed to fetch deployment source",
                    extra={"source": source, "error": str(exc), "error_type": type(exc).__name__},
                )
                failures[source] = exc
                fetched[source] = []

    if len(failures) == len(fetchers):
        first_error = next(iter(failures.values()))
        error = first_error if isinstance(first_error, MetricsEngineError) else UnknownError(str(first_error))
        return Result.failure(error)

    logger.debug(
        "Fetched deployment sources",
        extra={source: len(records) for source, records in fetched.items()},
    )

    releases = [release for release in fetched["releases"] if not release.is_draft]
    events = reconcile_deployments(releases, fetched["deployments"], fetched["tags"])
    source_errors = {source: str(error) for source, error in failures.items()}
    return Result.success(classify_deployment_frequency(events, source_errors=source_errors))
