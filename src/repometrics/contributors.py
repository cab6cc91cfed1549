"""Contributor activity aggregation across commits, pull requests and review comments."""

from __future__ import annotations

import hashlib
import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Sequence, Set, Tuple

from .errors import ValidationError
from .models import Commit, PullRequest, ReviewComment

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL_DOMAIN = "users.github.invalid"
MAX_EMAIL_LENGTH = 254

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ID_UNSAFE = re.compile(r"[^a-z0-9]")

COMMIT_WEIGHT = 5
LINE_WEIGHT = 0.5
AUTHORED_PR_WEIGHT = 20
REVIEW_COMMENT_WEIGHT = 5
REVIEWED_PR_WEIGHT = 30


@dataclass(frozen=True, slots=True)
class ImplementationActivity:
    """Commit volume attributed to one contributor."""

    commit_count: int = 0
    lines_added: int = 0
    lines_deleted: int = 0
    files_changed: int = 0


@dataclass(frozen=True, slots=True)
class ReviewActivity:
    """Pull request authorship and review participation for one contributor."""

    pull_request_count: int = 0
    review_comment_count: int = 0
    pull_requests_reviewed: int = 0


@dataclass(frozen=True, slots=True)
class Contributor:
    """Aggregated activity for one identity."""

    id: str
    primary_email: str
    display_name: str
    implementation_activity: ImplementationActivity
    review_activity: ReviewActivity
    merged_emails: Tuple[str, ...] = ()

    @property
    def activity_score(self) -> float:
        activity = self.implementation_activity
        return activity.commit_count * COMMIT_WEIGHT + (activity.lines_added + activity.lines_deleted) * LINE_WEIGHT

    @property
    def review_score(self) -> float:
        review = self.review_activity
        return (
            review.pull_request_count * AUTHORED_PR_WEIGHT
            + review.review_comment_count * REVIEW_COMMENT_WEIGHT
            + review.pull_requests_reviewed * REVIEWED_PR_WEIGHT
        )


def placeholder_email(handle: str) -> str:
    """Synthesize an email for a handle-only identity under a reserved, non-routable domain."""
    return f"{handle}@{PLACEHOLDER_EMAIL_DOMAIN}"


def contributor_id(identity_key: str) -> str:
    """Build a URL-safe id; the digest suffix keeps keys that slug alike distinct."""
    key = identity_key.lower()
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:8]
    return f"contributor-{_ID_UNSAFE.sub('-', key)}-{digest}"


def _validate_email(email: str) -> None:
    if len(email) > MAX_EMAIL_LENGTH or not _EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid contributor email: '{email}'.")


def _validate_non_negative(**counts: int) -> None:
    for label, value in counts.items():
        if value < 0:
            raise ValidationError(f"Contributor field '{label}' must be non-negative, got {value}.")


def _build_implementation_activity(commits: Sequence[Commit]) -> ImplementationActivity:
    return ImplementationActivity(
        commit_count=len(commits),
        lines_added=sum(commit.lines_added for commit in commits),
        lines_deleted=sum(commit.lines_deleted for commit in commits),
        files_changed=sum(commit.files_changed for commit in commits),
    )


def _build_review_activity(
    authored_prs: Sequence[PullRequest],
    comments: Sequence[ReviewComment],
) -> ReviewActivity:
    """Count authored PRs and comments on other people's PRs.

    Comments on the contributor's own PRs are not review activity.
    """
    own_numbers: Set[int] = {pr.number for pr in authored_prs}
    review_comments = [comment for comment in comments if comment.pull_request_number not in own_numbers]
    return ReviewActivity(
        pull_request_count=len(authored_prs),
        review_comment_count=len(review_comments),
        pull_requests_reviewed=len({comment.pull_request_number for comment in review_comments}),
    )


def _build_contributor(
    identity_key: str,
    commits: Sequence[Commit],
    authored_prs: Sequence[PullRequest],
    comments: Sequence[ReviewComment],
) -> Contributor:
    """Build and validate one contributor.

    Raises:
        ValidationError: If the resolved email is malformed or any count is negative.
    """
    primary_email = identity_key if "@" in identity_key else placeholder_email(identity_key)
    _validate_email(primary_email)

    implementation = _build_implementation_activity(commits)
    review = _build_review_activity(authored_prs, comments)
    _validate_non_negative(
        lines_added=implementation.lines_added,
        lines_deleted=implementation.lines_deleted,
        files_changed=implementation.files_changed,
    )

    display_name = commits[0].author_name if commits and commits[0].author_name else identity_key
    merged_emails = tuple(
        sorted({commit.author_email for commit in commits if commit.author_email.strip().lower() != primary_email})
    )

    return Contributor(
        id=contributor_id(identity_key),
        primary_email=primary_email,
        display_name=display_name,
        implementation_activity=implementation,
        review_activity=review,
        merged_emails=merged_emails,
    )


def aggregate_contributors(
    commits: Sequence[Commit],
    pull_requests: Sequence[PullRequest],
    review_comments: Sequence[ReviewComment],
) -> List[Contributor]:
    """Aggregate implementation and review activity per contributor identity.

    Business logic:
    - Commits are grouped by lower-cased author email.
    - Pull requests and review comments are grouped by lower-cased author handle.
    - The identity keys are the union of all three groupings, so a reviewer
      with no commits or authored PRs still becomes a contributor.
    - Handle-only identities receive a placeholder email.
    - A contributor that fails validation is skipped with a warning.

    Returns contributors sorted by identity key.
    """
    commits_by_key: Dict[str, List[Commit]] = defaultdict(list)
    prs_by_key: Dict[str, List[PullRequest]] = defaultdict(list)
    comments_by_key: Dict[str, List[ReviewComment]] = defaultdict(list)

    for commit in commits:
        commits_by_key[commit.author_email.strip().lower()].append(commit)
    for pr in pull_requests:
        prs_by_key[pr.author.strip().lower()].append(pr)
    for comment in review_comments:
        comments_by_key[comment.author.strip().lower()].append(comment)

    identity_keys = sorted(set(commits_by_key) | set(prs_by_key) | set(comments_by_key))
    contributors: List[Contributor] = []
    skipped = 0

    for identity_key in identity_keys:
        try:
            contributor = _build_contributor(
                identity_key,
                commits_by_key.get(identity_key, []),
                prs_by_key.get(identity_key, []),
                comments_by_key.get(identity_key, []),
            )
        except ValidationError as exc:
            skipped += 1
            logger.warning(
                "Skipping contributor that failed validation",
                extra={"identity_key": identity_key, "error": str(exc)},
            )
            continue
        contributors.append(contributor)

    logger.info(
        "Aggregated contributors",
        extra={
            "commits": len(commits),
            "pull_requests": len(pull_requests),
            "review_comments": len(review_comments),
            "contributors": len(contributors),
            "skipped": skipped,
        },
    )
    return contributors
