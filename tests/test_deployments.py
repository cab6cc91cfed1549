"""Tests for reconciling releases, deployments and tags."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repometrics.deployments import (
    DeploymentSource,
    deduplicate_events,
    event_from_release,
    normalize_tag_name,
    reconcile_deployments,
)
from repometrics.models import Deployment, Release, Tag

T1 = datetime(2026, 2, 1, tzinfo=timezone.utc)
T2 = T1 + timedelta(hours=2)
T3 = T1 + timedelta(hours=5)


def test_normalize_tag_name_strips_prefix_case_and_leading_v():
    """Verify tag names from different sources normalize to the same key."""
    assert normalize_tag_name("refs/tags/V1.0.0") == "1.0.0"
    assert normalize_tag_name("v1.0.0") == "1.0.0"
    assert normalize_tag_name("1.0.0") == "1.0.0"
    assert normalize_tag_name("release-2") == "release-2"


def test_same_tag_in_all_sources_keeps_release_timestamp():
    """Verify v1.0.0 as release, deployment and tag reconciles to one release event at T1."""
    events = reconcile_deployments(
        releases=[Release(tag_name="v1.0.0", created_at=T1)],
        deployments=[Deployment(id="D_1", created_at=T2, environment="production", ref="v1.0.0")],
        tags=[Tag(name="v1.0.0", tagged_at=T3)],
    )

    assert len(events) == 1
    assert events[0].source == DeploymentSource.RELEASE
    assert events[0].timestamp == T1
    assert events[0].id == "release-v1.0.0"


def test_deployment_beats_tag_when_no_release_exists():
    """Verify deployment outranks tag for the same normalized name."""
    events = reconcile_deployments(
        releases=[],
        deployments=[Deployment(id="D_2", created_at=T2, ref="refs/tags/v2.0.0")],
        tags=[Tag(name="v2.0.0", tagged_at=T1)],
    )

    assert len(events) == 1
    assert events[0].source == DeploymentSource.DEPLOYMENT
    assert events[0].timestamp == T2


def test_release_prefers_published_at_and_name():
    """Verify release events use publish time and release name when available."""
    event = event_from_release(Release(tag_name="v3.0.0", created_at=T1, published_at=T2, name="Big Release"))

    assert event.timestamp == T2
    assert event.display_name == "Big Release"


def test_output_is_sorted_newest_first():
    """Verify distinct events are returned by timestamp descending."""
    events = reconcile_deployments(
        releases=[Release(tag_name="v1.0.0", created_at=T1)],
        deployments=[Deployment(id="D_9", created_at=T3, ref="v1.2.0")],
        tags=[Tag(name="v1.1.0", tagged_at=T2)],
    )

    assert [event.timestamp for event in events] == [T3, T2, T1]


def test_deployments_without_ref_are_kept_separately():
    """Verify untagged deployments cannot collide and are all kept."""
    events = reconcile_deployments(
        releases=[],
        deployments=[Deployment(id="D_a", created_at=T1), Deployment(id="D_b", created_at=T2)],
        tags=[],
    )

    assert {event.id for event in events} == {"deployment-D_a", "deployment-D_b"}
    assert events[0].display_name == "D_b"


def test_undated_tags_are_skipped():
    """Verify tags without any date are dropped."""
    events = reconcile_deployments(releases=[], deployments=[], tags=[Tag(name="v0.1.0")])

    assert events == []


def test_deduplication_is_idempotent():
    """Verify reconciling an already deduplicated list returns it unchanged."""
    events = reconcile_deployments(
        releases=[Release(tag_name="v1.0.0", created_at=T1)],
        deployments=[Deployment(id="D_1", created_at=T3, ref="v1.1.0")],
        tags=[Tag(name="v1.2.0", tagged_at=T2)],
    )

    assert deduplicate_events(events) == events
    assert deduplicate_events(deduplicate_events(events)) == events
