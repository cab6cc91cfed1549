"""Domain models for repository activity ingestion.

These dataclasses model only the subset of GitHub payload fields that the
metrics calculators need. Records are immutable once produced by a fetch.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from .errors import MetricsEngineError, ValidationError

T = TypeVar("T")

PR_STATE_OPEN = "open"
PR_STATE_CLOSED = "closed"
PR_STATE_MERGED = "merged"

_REPOSITORY_URL_PATTERNS = (
    re.compile(r"^https?://github\.com/(?P<owner>[\w.-]+)/(?P<name>[\w.-]+?)(?:\.git)?/?$"),
    re.compile(r"^git@github\.com:(?P<owner>[\w.-]+)/(?P<name>[\w.-]+?)(?:\.git)?$"),
)


@dataclass(frozen=True, slots=True)
class QuotaStatus:
    """Remaining API budget as reported by the most recent response."""

    limit: int
    remaining: int
    reset_at: datetime


@dataclass(frozen=True, slots=True)
class Commit:
    """Represents a non-merge commit on the default branch."""

    hash: str
    author_name: str
    author_email: str
    committed_at: datetime
    first_line_message: str
    files_changed: int
    lines_added: int
    lines_deleted: int


@dataclass(frozen=True, slots=True)
class PullRequest:
    """Represents the pull request fields used by throughput and contributor metrics."""

    number: int
    title: str
    author: str
    created_at: datetime
    state: str
    merged_at: Optional[datetime] = None
    additions: Optional[int] = None
    deletions: Optional[int] = None
    changed_files: Optional[int] = None
    review_comment_count: int = 0

    @property
    def is_merged(self) -> bool:
        return self.state == PR_STATE_MERGED


@dataclass(frozen=True, slots=True)
class ReviewComment:
    """Represents one comment left on a pull request."""

    id: str
    author: str
    created_at: datetime
    body: str
    pull_request_number: int


@dataclass(frozen=True, slots=True)
class Release:
    """Represents a published or draft GitHub release."""

    tag_name: str
    created_at: datetime
    name: Optional[str] = None
    published_at: Optional[datetime] = None
    is_prerelease: bool = False
    is_draft: bool = False


@dataclass(frozen=True, slots=True)
class Deployment:
    """Represents a GitHub deployment record."""

    id: str
    created_at: datetime
    environment: Optional[str] = None
    state: Optional[str] = None
    ref: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Tag:
    """Represents a git tag; ``tagged_at`` prefers the annotated tagger date."""

    name: str
    tagged_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive UTC time window used to bound fetches and analyses."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValidationError(
                f"Invalid date range: end {self.end.isoformat()} is before start {self.start.isoformat()}."
            )

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True, slots=True)
class RepositoryRef:
    """Owner/name pair identifying a GitHub repository."""

    owner: str
    name: str

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.name}"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


def parse_repository_url(repo_url: str) -> RepositoryRef:
    """Parse a GitHub HTTPS or SSH remote URL into a ``RepositoryRef``.

    Raises:
        ValidationError: If the URL is empty or does not point at a GitHub repository.
    """
    candidate = (repo_url or "").strip()
    if not candidate:
        raise ValidationError("Repository URL must not be empty.")

    for pattern in _REPOSITORY_URL_PATTERNS:
        match = pattern.match(candidate)
        if match:
            return RepositoryRef(owner=match.group("owner"), name=match.group("name"))

    raise ValidationError(f"Unsupported repository URL: '{repo_url}'.")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Tagged success/failure outcome returned instead of raising."""

    value: Optional[T] = None
    error: Optional[MetricsEngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: MetricsEngineError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass(frozen=True, slots=True)
class PageInfo:
    """Cursor state for one page of a GraphQL connection."""

    has_next_page: bool
    end_cursor: Optional[str]


@dataclass(frozen=True, slots=True)
class Page:
    """One page of raw connection nodes plus the quota reported with it."""

    nodes: List[dict]
    page_info: PageInfo
    quota: Optional[QuotaStatus] = None
