"""GitHub GraphQL API client for repository activity retrieval."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests

from .config import DEFAULT_API_URL
from .errors import (
    ApiError,
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RateLimitExceededError,
    UnknownError,
)
from .models import Page, PageInfo, QuotaStatus

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    def get_access_token(self) -> str:
        ...


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse GitHub ISO8601 timestamps into timezone-aware UTC datetimes."""
    if not value:
        return None

    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_datetime(value: datetime) -> str:
    """Format a datetime as UTC ISO8601 suitable for GraphQL variables."""
    utc_value = value.astimezone(timezone.utc)
    return utc_value.isoformat().replace("+00:00", "Z")


class GitHubClient:
    """Small, typed client executing paginated GitHub GraphQL queries.

    The access token is requested from the token provider on the first call
    and cached for the lifetime of the client.
    """

    _MAX_RETRIES = 5
    _MAX_BACKOFF_SECONDS = 30
    _DEFAULT_RATE_LIMIT_WINDOW = timedelta(hours=1)

    def __init__(
        self,
        token_provider: TokenProvider,
        api_url: str = DEFAULT_API_URL,
        timeout_seconds: int = 30,
    ) -> None:
        """Initialize a lazily authenticated GitHub GraphQL client.

        Args:
            token_provider: Object exposing ``get_access_token()``.
            api_url: GraphQL endpoint URL.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._token_provider = token_provider
        self._api_url = api_url
        self._timeout_seconds = timeout_seconds
        self._session: Optional[requests.Session] = None

    def _get_session(self) -> requests.Session:
        """Return the authenticated session, creating it on first use."""
        if self._session is None:
            token = self._token_provider.get_access_token()
            session = requests.Session()
            session.headers.update(
                {
                    "Accept": "application/json",
                    "Authorization": f"bearer {token}",
                }
            )
            self._session = session
        return self._session

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute exponential backoff seconds, honoring Retry-After when available."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                retry_after_seconds = int(retry_after_header)
                return min(self._MAX_BACKOFF_SECONDS, max(1, retry_after_seconds))
            except ValueError:
                pass

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _rate_limit_error(self, response: requests.Response) -> RateLimitExceededError:
        """Build a rate-limit error using the reset header, or one hour from now."""
        now = datetime.now(timezone.utc)
        reset_at = now + self._DEFAULT_RATE_LIMIT_WINDOW
        reset_header = response.headers.get("x-ratelimit-reset")
        if reset_header:
            try:
                reset_at = datetime.fromtimestamp(int(reset_header), tz=timezone.utc)
            except ValueError:
                pass

        retry_after_seconds = max(0.0, (reset_at - now).total_seconds())
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                retry_after_seconds = float(retry_after_header)
            except ValueError:
                pass

        return RateLimitExceededError(
            f"GitHub API rate limit exceeded; resets at {format_datetime(reset_at)}",
            reset_at=reset_at,
            retry_after_seconds=retry_after_seconds,
        )

    def _raise_for_status(self, response: requests.Response) -> None:
        """Map HTTP error statuses onto the engine's error taxonomy."""
        status_code = response.status_code
        if status_code < 400:
            return

        text = response.text or ""
        if status_code == 401:
            raise AuthenticationError(f"GitHub rejected the access token: {status_code} - {text}")
        if status_code == 403:
            if "rate limit" in text.lower():
                raise self._rate_limit_error(response)
            raise AuthenticationError(f"GitHub denied access: {status_code} - {text}")
        if status_code == 404:
            raise NotFoundError(f"GitHub resource not found: {status_code} - {text}")
        if status_code == 429:
            raise self._rate_limit_error(response)
        if 500 <= status_code <= 599:
            raise NetworkError(f"GitHub API server error: {status_code} - {text}")

        raise ApiError(f"GitHub API request failed: POST {self._api_url} returned {status_code} - {text}")

    def _raise_for_graphql_errors(self, errors: List[Dict[str, Any]], response: requests.Response) -> None:
        """Map a GraphQL ``errors`` array onto the engine's error taxonomy."""
        messages = "; ".join(str(error.get("message", "unknown error")) for error in errors)
        error_types = {str(error.get("type", "")).upper() for error in errors}

        if "NOT_FOUND" in error_types:
            raise NotFoundError(f"GitHub GraphQL resource not found: {messages}")
        if "RATE_LIMITED" in error_types:
            raise self._rate_limit_error(response)
        if error_types & {"FORBIDDEN", "AUTHENTICATION_FAILURE"} or "bad credentials" in messages.lower():
            raise AuthenticationError(f"GitHub GraphQL access denied: {messages}")

        raise UnknownError(f"GitHub GraphQL query failed: {messages}")

    def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute one GraphQL query with retry logic for 429/5xx responses.

        Returns:
            The ``data`` object of the GraphQL response.

        Raises:
            AuthenticationError: If the token is missing, invalid, or lacks access.
            NotFoundError: If the repository or resource does not exist.
            RateLimitExceededError: If the quota is exhausted.
            NetworkError: If the transport repeatedly fails.
            ApiError: For any other unexpected response.
        """
        session = self._get_session()
        body = {"query": query, "variables": dict(variables or {})}

        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = session.post(self._api_url, json=body, timeout=self._timeout_seconds)
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise NetworkError(f"GitHub request failed after retries: POST {self._api_url}") from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = status_code == 429 or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                backoff = self._extract_backoff_seconds(response, attempt)
                logger.warning(
                    "Retrying GitHub request",
                    extra={"status_code": status_code, "attempt": attempt, "backoff_seconds": backoff},
                )
                time.sleep(backoff)
                continue

            self._raise_for_status(response)

            try:
                payload = response.json()
            except ValueError as exc:
                raise ApiError(f"GitHub API returned invalid JSON: POST {self._api_url}") from exc

            if not isinstance(payload, dict):
                raise ApiError(f"GitHub API returned unexpected payload shape: POST {self._api_url}")

            errors = payload.get("errors")
            if errors:
                self._raise_for_graphql_errors(errors, response)

            data = payload.get("data")
            if not isinstance(data, dict):
                raise ApiError(f"GitHub API response is missing 'data': POST {self._api_url}")

            return data

        raise NetworkError(f"GitHub request failed after retries: POST {self._api_url}") from last_error

    @staticmethod
    def _parse_quota(data: Dict[str, Any]) -> Optional[QuotaStatus]:
        """Extract the ``rateLimit`` object reported alongside a query result."""
        rate_limit = data.get("rateLimit")
        if not isinstance(rate_limit, dict):
            return None

        reset_at = parse_datetime(rate_limit.get("resetAt"))
        if reset_at is None:
            return None

        return QuotaStatus(
            limit=int(rate_limit.get("limit") or 0),
            remaining=int(rate_limit.get("remaining") or 0),
            reset_at=reset_at,
        )

    def fetch_page(
        self,
        query: str,
        variables: Dict[str, Any],
        connection_path: Sequence[str],
        cursor: Optional[str] = None,
    ) -> Page:
        """Execute one page of a connection query.

        Args:
            query: GraphQL document with ``$first`` and ``$after`` variables.
            variables: Query variables other than the cursor.
            connection_path: Keys leading from ``data`` to the connection object,
                for example ``("repository", "pullRequests")``.
            cursor: ``endCursor`` of the previous page, or ``None`` for the first page.

        Returns:
            The page nodes, cursor info and reported quota. A ``null`` object
            along the path below the repository (for example an empty repository
            without a default branch) yields an empty final page.

        Raises:
            NotFoundError: If the repository itself resolves to ``null``.
        """
        page_variables = dict(variables)
        page_variables["after"] = cursor
        data = self.execute(query, page_variables)
        quota = self._parse_quota(data)

        node: Any = data
        for index, key in enumerate(connection_path):
            node = node.get(key) if isinstance(node, dict) else None
            if node is None:
                if index == 0:
                    raise NotFoundError(f"GitHub returned no '{key}' object for the requested query.")
                return Page(nodes=[], page_info=PageInfo(has_next_page=False, end_cursor=None), quota=quota)

        page_info = node.get("pageInfo") or {}
        nodes = [item for item in node.get("nodes") or [] if isinstance(item, dict)]

        return Page(
            nodes=nodes,
            page_info=PageInfo(
                has_next_page=bool(page_info.get("hasNextPage")),
                end_cursor=page_info.get("endCursor"),
            ),
            quota=quota,
        )
