"""Repository data sources: one interface, a remote GitHub implementation.

A data source turns paginated GitHub connections into domain records. The
``fetch_repository_data`` entry point combines commits, pull requests and
per-PR review comments into a single ``RepositoryData`` bundle.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import queries
from .config import Config, EnvTokenProvider
from .errors import ConfigurationError, MetricsEngineError, UnknownError
from .fanout import BatchFanout, FanoutFailure, FanoutResult
from .github_client import GitHubClient, TokenProvider, format_datetime, parse_datetime
from .models import (
    PR_STATE_CLOSED,
    PR_STATE_MERGED,
    PR_STATE_OPEN,
    Commit,
    DateRange,
    Deployment,
    PullRequest,
    Release,
    RepositoryRef,
    Result,
    ReviewComment,
    Tag,
    parse_repository_url,
)
from .pagination import PaginatedFetcher
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "unknown"

_PR_STATES = {
    "OPEN": PR_STATE_OPEN,
    "CLOSED": PR_STATE_CLOSED,
    "MERGED": PR_STATE_MERGED,
}


@dataclass(frozen=True)
class RepositoryData:
    """Raw activity fetched for one repository and date range."""

    repository: RepositoryRef
    date_range: DateRange
    commits: List[Commit]
    pull_requests: List[PullRequest]
    review_comments: List[ReviewComment]
    comment_errors: List[FanoutFailure] = field(default_factory=list)


class RepositoryDataSource(ABC):
    """Capability for reading repository activity from some backing store."""

    @abstractmethod
    def fetch_commits(self, repository: RepositoryRef, date_range: DateRange) -> List[Commit]:
        """Return non-merge commits on the default branch inside ``date_range``."""

    @abstractmethod
    def fetch_pull_requests(self, repository: RepositoryRef, date_range: DateRange) -> List[PullRequest]:
        """Return pull requests created inside ``date_range``."""

    @abstractmethod
    def fetch_review_comments(
        self, repository: RepositoryRef, pr_numbers: Sequence[int]
    ) -> FanoutResult[int, ReviewComment]:
        """Return comments for each pull request, isolating per-PR failures."""

    @abstractmethod
    def fetch_releases(self, repository: RepositoryRef, since: Optional[datetime] = None) -> List[Release]:
        """Return non-draft releases published at or after ``since``."""

    @abstractmethod
    def fetch_deployments(self, repository: RepositoryRef, since: Optional[datetime] = None) -> List[Deployment]:
        """Return deployments created at or after ``since``."""

    @abstractmethod
    def fetch_tags(self, repository: RepositoryRef, since: Optional[datetime] = None) -> List[Tag]:
        """Return tags dated at or after ``since``."""


def _author_login(node: Dict[str, Any]) -> str:
    author = node.get("author") or {}
    return str(author.get("login") or UNKNOWN_AUTHOR)


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def map_pull_request(node: Dict[str, Any]) -> Optional[PullRequest]:
    """Map a ``pullRequests`` node; nodes without a number or creation date are dropped."""
    number = node.get("number")
    created_at = parse_datetime(node.get("createdAt"))
    if number is None or created_at is None:
        logger.debug("Skipping pull request node with missing fields", extra={"node": node})
        return None

    reviews = node.get("reviews") or {}
    return PullRequest(
        number=int(number),
        title=str(node.get("title") or ""),
        author=_author_login(node),
        created_at=created_at,
        state=_PR_STATES.get(str(node.get("state", "")).upper(), PR_STATE_OPEN),
        merged_at=parse_datetime(node.get("mergedAt")),
        additions=_optional_int(node.get("additions")),
        deletions=_optional_int(node.get("deletions")),
        changed_files=_optional_int(node.get("changedFiles")),
        review_comment_count=int(reviews.get("totalCount") or 0),
    )


def map_commit(node: Dict[str, Any]) -> Optional[Commit]:
    """Map a commit ``history`` node; merge commits and undated commits are dropped."""
    parents = node.get("parents") or {}
    if int(parents.get("totalCount") or 0) > 1:
        return None

    author = node.get("author") or {}
    committed_at = parse_datetime(author.get("date"))
    if committed_at is None:
        return None

    message = str(node.get("message") or "")
    return Commit(
        hash=str(node.get("oid") or ""),
        author_name=str(author.get("name") or ""),
        author_email=str(author.get("email") or ""),
        committed_at=committed_at,
        first_line_message=message.splitlines()[0] if message else "",
        files_changed=int(node.get("changedFilesIfAvailable") or 0),
        lines_added=int(node.get("additions") or 0),
        lines_deleted=int(node.get("deletions") or 0),
    )


def map_review_comment(node: Dict[str, Any], pull_request_number: int) -> Optional[ReviewComment]:
    created_at = parse_datetime(node.get("createdAt"))
    if created_at is None:
        return None
    return ReviewComment(
        id=str(node.get("id") or ""),
        author=_author_login(node),
        created_at=created_at,
        body=str(node.get("body") or ""),
        pull_request_number=pull_request_number,
    )


def map_release(node: Dict[str, Any]) -> Optional[Release]:
    tag_name = node.get("tagName")
    created_at = parse_datetime(node.get("createdAt"))
    if not tag_name or created_at is None:
        return None
    return Release(
        tag_name=str(tag_name),
        created_at=created_at,
        name=node.get("name") or None,
        published_at=parse_datetime(node.get("publishedAt")),
        is_prerelease=bool(node.get("isPrerelease")),
        is_draft=bool(node.get("isDraft")),
    )


def map_deployment(node: Dict[str, Any]) -> Optional[Deployment]:
    created_at = parse_datetime(node.get("createdAt"))
    if not node.get("id") or created_at is None:
        return None
    ref = node.get("ref") or {}
    return Deployment(
        id=str(node["id"]),
        created_at=created_at,
        environment=node.get("environment") or None,
        state=node.get("state") or None,
        ref=ref.get("name") or None,
    )


def map_tag(node: Dict[str, Any]) -> Optional[Tag]:
    """Map a tag ref; annotated tags use the tagger date, lightweight tags the commit date."""
    name = node.get("name")
    if not name:
        return None

    target = node.get("target") or {}
    tagger = target.get("tagger") or {}
    tagged_at = parse_datetime(tagger.get("date"))
    if tagged_at is None:
        tagged_at = parse_datetime(target.get("committedDate"))
    if tagged_at is None:
        tagged_at = parse_datetime((target.get("target") or {}).get("committedDate"))

    return Tag(name=str(name), tagged_at=tagged_at)


def release_timestamp(release: Release) -> datetime:
    return release.published_at or release.created_at


class GitHubDataSource(RepositoryDataSource):
    """Reads repository activity through the GitHub GraphQL API."""

    def __init__(
        self,
        client: GitHubClient,
        rate_limiter: RateLimiter,
        page_size: int = 100,
        batch_width: int = 15,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._client = client
        self._rate_limiter = rate_limiter
        self._page_size = page_size
        self._batch_width = batch_width
        self._cancel_event = cancel_event

    def _page_fetcher(self, query: str, variables: Dict[str, Any], connection_path: Sequence[str]) -> Callable:
        def fetch_page(cursor: Optional[str]):
            return self._client.fetch_page(query, variables, connection_path, cursor)

        return fetch_page

    def _variables(self, repository: RepositoryRef, **extra: Any) -> Dict[str, Any]:
        variables: Dict[str, Any] = {"owner": repository.owner, "name": repository.name, "first": self._page_size}
        variables.update(extra)
        return variables

    def fetch_commits(self, repository: RepositoryRef, date_range: DateRange) -> List[Commit]:
        fetcher: PaginatedFetcher[Commit] = PaginatedFetcher(
            self._rate_limiter,
            map_node=map_commit,
            include=lambda commit: date_range.contains(commit.committed_at),
            cancel_event=self._cancel_event,
            operation="commits",
        )
        variables = self._variables(
            repository,
            since=format_datetime(date_range.start),
            until=format_datetime(date_range.end),
        )
        commits = fetcher.fetch_all(
            self._page_fetcher(
                queries.COMMITS_QUERY,
                variables,
                ("repository", "defaultBranchRef", "target", "history"),
            )
        )
        logger.info("Fetched commits", extra={"repository": repository.full_name, "count": len(commits)})
        return commits

    def fetch_pull_requests(self, repository: RepositoryRef, date_range: DateRange) -> List[PullRequest]:
        fetcher: PaginatedFetcher[PullRequest] = PaginatedFetcher(
            self._rate_limiter,
            map_node=map_pull_request,
            include=lambda pr: date_range.contains(pr.created_at),
            timestamp_of=lambda pr: pr.created_at,
            floor=date_range.start,
            cancel_event=self._cancel_event,
            operation="pull_requests",
        )
        pull_requests = fetcher.fetch_all(
            self._page_fetcher(queries.PULL_REQUESTS_QUERY, self._variables(repository), ("repository", "pullRequests"))
        )
        logger.info("Fetched pull requests", extra={"repository": repository.full_name, "count": len(pull_requests)})
        return pull_requests

    def _fetch_comments_for(self, repository: RepositoryRef, number: int) -> List[ReviewComment]:
        fetcher: PaginatedFetcher[ReviewComment] = PaginatedFetcher(
            self._rate_limiter,
            map_node=lambda node: map_review_comment(node, number),
            cancel_event=self._cancel_event,
            operation=f"comments#{number}",
        )
        return fetcher.fetch_all(
            self._page_fetcher(
                queries.REVIEW_COMMENTS_QUERY,
                self._variables(repository, number=number),
                ("repository", "pullRequest", "comments"),
            )
        )

    def fetch_review_comments(
        self, repository: RepositoryRef, pr_numbers: Sequence[int]
    ) -> FanoutResult[int, ReviewComment]:
        fanout = BatchFanout(self._rate_limiter, width=self._batch_width, cancel_event=self._cancel_event)
        return fanout.run(list(pr_numbers), lambda number: self._fetch_comments_for(repository, number))

    def fetch_releases(self, repository: RepositoryRef, since: Optional[datetime] = None) -> List[Release]:
        fetcher: PaginatedFetcher[Release] = PaginatedFetcher(
            self._rate_limiter,
            map_node=map_release,
            include=lambda release: not release.is_draft
            and (since is None or release_timestamp(release) >= since),
            timestamp_of=lambda release: release.created_at,
            floor=since,
            cancel_event=self._cancel_event,
            operation="releases",
        )
        return fetcher.fetch_all(
            self._page_fetcher(queries.RELEASES_QUERY, self._variables(repository), ("repository", "releases"))
        )

    def fetch_deployments(self, repository: RepositoryRef, since: Optional[datetime] = None) -> List[Deployment]:
        fetcher: PaginatedFetcher[Deployment] = PaginatedFetcher(
            self._rate_limiter,
            map_node=map_deployment,
            include=lambda deployment: since is None or deployment.created_at >= since,
            timestamp_of=lambda deployment: deployment.created_at,
            floor=since,
            cancel_event=self._cancel_event,
            operation="deployments",
        )
        return fetcher.fetch_all(
            self._page_fetcher(queries.DEPLOYMENTS_QUERY, self._variables(repository), ("repository", "deployments"))
        )

    def fetch_tags(self, repository: RepositoryRef, since: Optional[datetime] = None) -> List[Tag]:
        fetcher: PaginatedFetcher[Tag] = PaginatedFetcher(
            self._rate_limiter,
            map_node=map_tag,
            include=lambda tag: since is None or (tag.tagged_at is not None and tag.tagged_at >= since),
            # Refs sort by commit date while tagged_at prefers the tagger date, so no early stop.
            cancel_event=self._cancel_event,
            operation="tags",
        )
        return fetcher.fetch_all(
            self._page_fetcher(queries.TAGS_QUERY, self._variables(repository), ("repository", "refs"))
        )


def _build_remote_source(
    config: Config,
    token_provider: Optional[TokenProvider],
    rate_limiter: RateLimiter,
    cancel_event: Optional[threading.Event],
) -> RepositoryDataSource:
    client = GitHubClient(token_provider=token_provider or EnvTokenProvider(), api_url=config.api_url)
    return GitHubDataSource(
        client=client,
        rate_limiter=rate_limiter,
        page_size=config.page_size,
        batch_width=config.batch_width,
        cancel_event=cancel_event,
    )


_SOURCE_BUILDERS = {
    "remote": _build_remote_source,
}


def get_data_source(
    config: Config,
    rate_limiter: RateLimiter,
    token_provider: Optional[TokenProvider] = None,
    cancel_event: Optional[threading.Event] = None,
) -> RepositoryDataSource:
    """Create the data source variant named by ``config.source``.

    Raises:
        ConfigurationError: If no variant is registered under that name.
    """
    builder = _SOURCE_BUILDERS.get(config.source)
    if builder is None:
        raise ConfigurationError(f"Unsupported data source '{config.source}'.")
    return builder(config, token_provider, rate_limiter, cancel_event)


def fetch_repository_data(
    data_source: RepositoryDataSource,
    repo_url: str,
    date_range: DateRange,
) -> Result[RepositoryData]:
    """Fetch commits, pull requests and review comments for one repository.

    Comment fetches run per pull request through the batch fan-out. Individual
    PR comment failures are reported in ``comment_errors``; the call fails only
    when every comment fetch failed and none returned records.

    Returns:
        ``Result`` wrapping ``RepositoryData`` or the classified error.
    """
    try:
        repository = parse_repository_url(repo_url)
        commits = data_source.fetch_commits(repository, date_range)
        pull_requests = data_source.fetch_pull_requests(repository, date_range)
        comments = data_source.fetch_review_comments(repository, [pr.number for pr in pull_requests])
    except MetricsEngineError as exc:
        logger.warning(
            "Repository fetch failed",
            extra={"repo_url": repo_url, "error_code": exc.code, "error": str(exc)},
        )
        return Result.failure(exc)

    if not comments.succeeded:
        first_error = comments.errors[0].error
        error = first_error if isinstance(first_error, MetricsEngineError) else UnknownError(str(first_error))
        logger.warning(
            "All review comment fetches failed",
            extra={"repo_url": repo_url, "failures": len(comments.errors)},
        )
        return Result.failure(error)

    if comments.errors:
        logger.warning(
            "Some review comment fetches failed",
            extra={"repo_url": repo_url, "failures": len(comments.errors)},
        )

    return Result.success(
        RepositoryData(
            repository=repository,
            date_range=date_range,
            commits=commits,
            pull_requests=pull_requests,
            review_comments=comments.records,
            comment_errors=list(comments.errors),
        )
    )
