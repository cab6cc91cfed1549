"""End-to-end repository analysis: fetch once, then derive every metric family.

Contributor aggregation is the primary result. Throughput, timeseries and
deployment frequency are independent enrichments: a failure in one is
recorded in ``enrichment_errors`` and never prevents the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from .contributors import Contributor, aggregate_contributors
from .data_sources import RepositoryData, RepositoryDataSource, fetch_repository_data
from .deployment_frequency import DeploymentFrequencyResult, compute_deployment_frequency
from .errors import MetricsEngineError
from .models import DateRange, Result
from .throughput import ThroughputResult, analyze_throughput
from .timeseries import TimeseriesResult, analyze_timeseries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryAnalysis:
    """All metrics derived for one repository and date range."""

    data: RepositoryData
    contributors: List[Contributor]
    throughput: Optional[ThroughputResult] = None
    timeseries: Optional[TimeseriesResult] = None
    deployment_frequency: Optional[DeploymentFrequencyResult] = None
    enrichment_errors: Dict[str, str] = field(default_factory=dict)


def date_range_for_days(days: int, now: Optional[datetime] = None) -> DateRange:
    """Return the window covering the last ``days`` days up to ``now`` (UTC)."""
    end = now or datetime.now(timezone.utc)
    return DateRange(start=end - timedelta(days=days), end=end)


def analyze_repository(
    data_source: RepositoryDataSource,
    repo_url: str,
    date_range: DateRange,
) -> Result[RepositoryAnalysis]:
    """Fetch repository activity and compute all four metric families.

    Returns:
        A failed ``Result`` only when the activity fetch itself fails;
        enrichment failures are reported on the analysis instead.
    """
    fetched = fetch_repository_data(data_source, repo_url, date_range)
    if not fetched.ok:
        return Result.failure(fetched.error)  # type: ignore[arg-type]

    data = fetched.unwrap()
    contributors = aggregate_contributors(data.commits, data.pull_requests, data.review_comments)
    enrichment_errors: Dict[str, str] = {}

    throughput: Optional[ThroughputResult] = None
    try:
        throughput = analyze_throughput(repo_url, data.pull_requests, date_range)
    except MetricsEngineError as exc:
        logger.warning("Throughput analysis failed", extra={"repo_url": repo_url, "error": str(exc)})
        enrichment_errors["throughput"] = str(exc)

    timeseries: Optional[TimeseriesResult] = None
    try:
        timeseries = analyze_timeseries(data.pull_requests)
    except MetricsEngineError as exc:
        logger.warning("Timeseries analysis failed", extra={"repo_url": repo_url, "error": str(exc)})
        enrichment_errors["timeseries"] = str(exc)

    deployment_frequency: Optional[DeploymentFrequencyResult] = None
    frequency_result = compute_deployment_frequency(
        data_source,
        data.repository.owner,
        data.repository.name,
        since_date=date_range.start,
    )
    if frequency_result.ok:
        deployment_frequency = frequency_result.value
    else:
        logger.warning(
            "Deployment frequency analysis failed",
            extra={"repo_url": repo_url, "error": str(frequency_result.error)},
        )
        enrichment_errors["deployment_frequency"] = str(frequency_result.error)

    logger.info(
        "Repository analysis complete",
        extra={
            "repo_url": repo_url,
            "contributors": len(contributors),
            "enrichment_failures": len(enrichment_errors),
        },
    )

    return Result.success(
        RepositoryAnalysis(
            data=data,
            contributors=contributors,
            throughput=throughput,
            timeseries=timeseries,
            deployment_frequency=deployment_frequency,
            enrichment_errors=enrichment_errors,
        )
    )
