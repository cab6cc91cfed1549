"""Reconciliation of releases, deployments and tags into one deployment timeline.

The same logical deployment often shows up in several sources (a ``v1.2.0``
tag, its GitHub release, and a deployment pointing at the tag). Events are
keyed by normalized tag name and the highest-priority source wins:
release, then deployment, then tag.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from .models import Deployment, Release, Tag

logger = logging.getLogger(__name__)


class DeploymentSource(str, Enum):
    RELEASE = "release"
    DEPLOYMENT = "deployment"
    TAG = "tag"


@dataclass(frozen=True, slots=True)
class DeploymentEvent:
    """One deployment on the reconciled timeline."""

    id: str
    timestamp: datetime
    source: DeploymentSource
    display_name: str
    tag_name: Optional[str] = None
    environment: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        """Normalized tag name, or the event id for events without a tag."""
        if self.tag_name:
            return normalize_tag_name(self.tag_name)
        return self.id


def normalize_tag_name(tag_name: str) -> str:
    """Normalize a tag for matching: ``refs/tags/V1.0`` and ``v1.0`` both become ``1.0``."""
    normalized = tag_name.strip()
    if normalized.startswith("refs/tags/"):
        normalized = normalized[len("refs/tags/") :]
    normalized = normalized.lower()
    if normalized.startswith("v"):
        normalized = normalized[1:]
    return normalized


def event_from_release(release: Release) -> DeploymentEvent:
    return DeploymentEvent(
        id=f"release-{release.tag_name}",
        timestamp=release.published_at or release.created_at,
        source=DeploymentSource.RELEASE,
        display_name=release.name or release.tag_name,
        tag_name=release.tag_name,
    )


def event_from_deployment(deployment: Deployment) -> DeploymentEvent:
    return DeploymentEvent(
        id=f"deployment-{deployment.id}",
        timestamp=deployment.created_at,
        source=DeploymentSource.DEPLOYMENT,
        display_name=deployment.ref or deployment.id,
        tag_name=deployment.ref,
        environment=deployment.environment,
    )


def event_from_tag(tag: Tag) -> Optional[DeploymentEvent]:
    """Convert a tag into an event; tags without any date cannot be placed and yield ``None``."""
    if tag.tagged_at is None:
        logger.warning("Skipping tag without a date", extra={"tag": tag.name})
        return None
    return DeploymentEvent(
        id=f"tag-{tag.name}",
        timestamp=tag.tagged_at,
        source=DeploymentSource.TAG,
        display_name=tag.name,
        tag_name=tag.name,
    )


def deduplicate_events(events: Iterable[DeploymentEvent]) -> List[DeploymentEvent]:
    """Keep the first event per dedup key, newest first.

    ``events`` must already be ordered by source priority; later duplicates are
    discarded whole, never merged.
    """
    by_key: Dict[str, DeploymentEvent] = {}
    discarded = 0
    for event in events:
        key = event.dedup_key
        if key in by_key:
            discarded += 1
            continue
        by_key[key] = event

    if discarded:
        logger.debug("Discarded duplicate deployment events", extra={"duplicates": discarded})

    return sorted(by_key.values(), key=lambda event: event.timestamp, reverse=True)


def reconcile_deployments(
    releases: Sequence[Release],
    deployments: Sequence[Deployment],
    tags: Sequence[Tag],
) -> List[DeploymentEvent]:
    """Merge the three sources into one deduplicated timeline sorted newest first."""
    events: List[DeploymentEvent] = [event_from_release(release) for release in releases]
    events.extend(event_from_deployment(deployment) for deployment in deployments)
    for tag in tags:
        event = event_from_tag(tag)
        if event is not None:
            events.append(event)

    reconciled = deduplicate_events(events)
    logger.info(
        "Reconciled deployment events",
        extra={
            "releases": len(releases),
            "deployments": len(deployments),
            "tags": len(tags),
            "events": len(reconciled),
        },
    )
    return reconciled
