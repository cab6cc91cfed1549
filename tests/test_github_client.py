"""Tests for the GitHub GraphQL client with mocked HTTP."""

import sys
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import requests

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repometrics.errors import (
    ApiError,
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RateLimitExceededError,
    UnknownError,
)
from repometrics.github_client import GitHubClient, parse_datetime

RATE_LIMIT = {"limit": 5000, "cost": 1, "remaining": 4999, "resetAt": "2026-03-01T13:00:00Z"}


def _build_client() -> GitHubClient:
    provider = Mock()
    provider.get_access_token.return_value = "token-123"
    client = GitHubClient(token_provider=provider)
    client._session = Mock()
    return client


def _response(status_code: int, payload=None, text: str = "", headers=None):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.headers = headers or {}
    response.json.return_value = payload if payload is not None else {}
    return response


def _connection_payload(nodes, has_next=False, cursor=None):
    return {
        "data": {
            "repository": {
                "pullRequests": {
                    "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                    "nodes": nodes,
                }
            },
            "rateLimit": RATE_LIMIT,
        }
    }


def test_token_is_requested_lazily_and_cached():
    """Verify the token provider is called once, on the first request."""
    provider = Mock()
    provider.get_access_token.return_value = "token-123"

    with patch("repometrics.github_client.requests.Session") as session_ctor:
        session = session_ctor.return_value
        session.headers = {}
        session.post.return_value = _response(200, payload={"data": {"viewer": {}}})
        client = GitHubClient(token_provider=provider)

        provider.get_access_token.assert_not_called()
        client.execute("query { viewer { login } }")
        client.execute("query { viewer { login } }")

    provider.get_access_token.assert_called_once_with()
    session_ctor.assert_called_once_with()
    assert session.headers["Authorization"] == "bearer token-123"


def test_missing_token_raises_authentication_error():
    """Verify token provider failures surface as authentication errors."""
    provider = Mock()
    provider.get_access_token.side_effect = AuthenticationError("no token")
    client = GitHubClient(token_provider=provider)

    with pytest.raises(AuthenticationError):
        client.execute("query { viewer { login } }")


def test_fetch_page_returns_nodes_page_info_and_quota():
    """Verify a connection page is unpacked along the connection path."""
    client = _build_client()
    client._session.post.return_value = _response(
        200, payload=_connection_payload([{"number": 1}, {"number": 2}], has_next=True, cursor="abc")
    )

    page = client.fetch_page("query", {"owner": "o", "name": "r", "first": 100}, ("repository", "pullRequests"), "prev")

    assert [node["number"] for node in page.nodes] == [1, 2]
    assert page.page_info.has_next_page is True
    assert page.page_info.end_cursor == "abc"
    assert page.quota.remaining == 4999
    assert page.quota.reset_at == parse_datetime("2026-03-01T13:00:00Z")
    sent_variables = client._session.post.call_args.kwargs["json"]["variables"]
    assert sent_variables["after"] == "prev"


def test_fetch_page_null_nested_object_yields_empty_final_page():
    """Verify an empty repository without a default branch produces no commits."""
    client = _build_client()
    client._session.post.return_value = _response(
        200, payload={"data": {"repository": {"defaultBranchRef": None}, "rateLimit": RATE_LIMIT}}
    )

    page = client.fetch_page("query", {}, ("repository", "defaultBranchRef", "target", "history"))

    assert page.nodes == []
    assert page.page_info.has_next_page is False


def test_fetch_page_null_repository_raises_not_found():
    """Verify a null repository object is reported as not found."""
    client = _build_client()
    client._session.post.return_value = _response(200, payload={"data": {"repository": None}})

    with pytest.raises(NotFoundError):
        client.fetch_page("query", {}, ("repository", "pullRequests"))


def test_execute_retries_on_502_and_succeeds():
    """Verify retryable server errors are retried with backoff."""
    client = _build_client()
    client._session.post = Mock(
        side_effect=[_response(502, text="bad gateway"), _response(200, payload={"data": {"ok": True}})]
    )

    with patch("repometrics.github_client.time.sleep") as sleep_mock:
        data = client.execute("query")

    assert data == {"ok": True}
    assert client._session.post.call_count == 2
    sleep_mock.assert_called_once_with(1)


def test_execute_raises_network_error_after_repeated_transport_failures():
    """Verify transport exceptions are retried then classified as network errors."""
    client = _build_client()
    client._session.post = Mock(side_effect=requests.ConnectionError("reset"))

    with patch("repometrics.github_client.time.sleep") as sleep_mock:
        with pytest.raises(NetworkError):
            client.execute("query")

    assert client._session.post.call_count == client._MAX_RETRIES
    assert sleep_mock.call_count == client._MAX_RETRIES - 1


def test_execute_maps_401_to_authentication_error():
    """Verify an invalid token is reported as an authentication error."""
    client = _build_client()
    client._session.post.return_value = _response(401, text="Bad credentials")

    with pytest.raises(AuthenticationError):
        client.execute("query")


def test_execute_maps_403_rate_limit_with_reset_header():
    """Verify a 403 mentioning the rate limit carries reset time from the header."""
    client = _build_client()
    client._session.post.return_value = _response(
        403,
        text="API rate limit exceeded for user",
        headers={"x-ratelimit-reset": "1772370000"},
    )

    with pytest.raises(RateLimitExceededError) as exc_info:
        client.execute("query")

    assert int(exc_info.value.reset_at.timestamp()) == 1772370000
    assert exc_info.value.code == "RATE_LIMIT_EXCEEDED"


def test_execute_maps_graphql_rate_limited_error_with_reset_and_retry_after():
    """Verify a 200 carrying a RATE_LIMITED error reports both reset time and retry-after."""
    client = _build_client()
    client._session.post.return_value = _response(
        200,
        payload={"data": None, "errors": [{"type": "RATE_LIMITED", "message": "API rate limit exceeded"}]},
        headers={"x-ratelimit-reset": "1772370000", "Retry-After": "42"},
    )

    with pytest.raises(RateLimitExceededError) as exc_info:
        client.execute("query")

    assert int(exc_info.value.reset_at.timestamp()) == 1772370000
    assert exc_info.value.retry_after_seconds == 42.0


def test_execute_graphql_rate_limited_without_headers_still_has_retry_after():
    """Verify the retry-after falls back to the time until the default reset."""
    client = _build_client()
    client._session.post.return_value = _response(
        200,
        payload={"errors": [{"type": "RATE_LIMITED", "message": "API rate limit exceeded"}]},
    )

    with pytest.raises(RateLimitExceededError) as exc_info:
        client.execute("query")

    assert exc_info.value.reset_at is not None
    assert exc_info.value.retry_after_seconds is not None
    assert exc_info.value.retry_after_seconds > 0


def test_execute_maps_plain_403_to_authentication_error():
    """Verify a 403 without rate limit wording is an access error."""
    client = _build_client()
    client._session.post.return_value = _response(403, text="Resource not accessible by integration")

    with pytest.raises(AuthenticationError):
        client.execute("query")


def test_execute_maps_404_to_not_found():
    """Verify HTTP 404 becomes NotFoundError."""
    client = _build_client()
    client._session.post.return_value = _response(404, text="Not Found")

    with pytest.raises(NotFoundError):
        client.execute("query")


def test_execute_maps_graphql_not_found_error():
    """Verify GraphQL NOT_FOUND errors are classified."""
    client = _build_client()
    client._session.post.return_value = _response(
        200,
        payload={
            "data": {"repository": None},
            "errors": [{"type": "NOT_FOUND", "message": "Could not resolve to a Repository"}],
        },
    )

    with pytest.raises(NotFoundError):
        client.execute("query")


def test_execute_maps_unclassified_graphql_error_to_unknown():
    """Verify unknown GraphQL error types fall back to UnknownError."""
    client = _build_client()
    client._session.post.return_value = _response(
        200, payload={"errors": [{"type": "SOMETHING_ELSE", "message": "weird"}]}
    )

    with pytest.raises(UnknownError):
        client.execute("query")


def test_execute_rejects_invalid_json():
    """Verify a non-JSON body raises ApiError."""
    client = _build_client()
    response = _response(200)
    response.json.side_effect = ValueError("no json")
    client._session.post.return_value = response

    with pytest.raises(ApiError):
        client.execute("query")


def test_parse_datetime_normalizes_to_utc():
    """Verify Z suffixes and naive timestamps become timezone-aware UTC."""
    assert parse_datetime("2026-03-01T10:00:00Z").utcoffset().total_seconds() == 0
    assert parse_datetime("2026-03-01T10:00:00").tzinfo is not None
    assert parse_datetime(None) is None
