"""Configuration parsing and validation for the repository metrics engine."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import AuthenticationError, ConfigurationError, ValidationError
from .models import RepositoryRef, parse_repository_url

DEFAULT_API_URL = "https://api.github.com/graphql"
DEFAULT_BATCH_WIDTH = 15
DEFAULT_PAGE_SIZE = 100
SUPPORTED_SOURCES = ("remote",)


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by one analysis run."""

    repo_url: str
    days: int
    batch_width: int = DEFAULT_BATCH_WIDTH
    page_size: int = DEFAULT_PAGE_SIZE
    source: str = "remote"
    api_url: str = DEFAULT_API_URL

    @property
    def repository(self) -> RepositoryRef:
        return parse_repository_url(self.repo_url)


def load_config(
    repo_url: str,
    days: int,
    batch_width: int = DEFAULT_BATCH_WIDTH,
    page_size: int = DEFAULT_PAGE_SIZE,
    source: str = "remote",
) -> Config:
    """Build and validate application configuration.

    Args:
        repo_url: GitHub repository URL (HTTPS or SSH form).
        days: Positive number of days of history to analyze.
        batch_width: Number of concurrent per-PR comment fetches per batch.
        page_size: Records requested per GraphQL page.
        source: Data source variant name.

    Returns:
        A validated ``Config`` instance. The API endpoint can be overridden
        with the ``GITHUB_GRAPHQL_URL`` environment variable.

    Raises:
        ConfigurationError: If any value is out of range or the URL cannot be parsed.
    """
    if days <= 0:
        raise ConfigurationError("Invalid value for 'days': expected an integer greater than 0.")

    if not 1 <= batch_width <= 100:
        raise ConfigurationError("Invalid value for 'batch_width': expected an integer between 1 and 100.")

    if not 1 <= page_size <= 100:
        raise ConfigurationError("Invalid value for 'page_size': expected an integer between 1 and 100.")

    if source not in SUPPORTED_SOURCES:
        raise ConfigurationError(
            f"Unsupported data source '{source}'. Expected one of: {', '.join(SUPPORTED_SOURCES)}."
        )

    try:
        parse_repository_url(repo_url)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc

    api_url = os.getenv("GITHUB_GRAPHQL_URL", "").strip() or DEFAULT_API_URL

    return Config(
        repo_url=repo_url.strip(),
        days=days,
        batch_width=batch_width,
        page_size=page_size,
        source=source,
        api_url=api_url,
    )


class EnvTokenProvider:
    """Access-token provider backed by the ``GITHUB_TOKEN`` environment variable."""

    def __init__(self, variable: str = "GITHUB_TOKEN") -> None:
        self._variable = variable

    def get_access_token(self) -> str:
        """Return the configured token.

        Raises:
            AuthenticationError: If the environment variable is missing or blank.
        """
        token = os.getenv(self._variable, "").strip()
        if not token:
            raise AuthenticationError(
                "Missing required GitHub access token. "
                f"Set the '{self._variable}' environment variable before running the analysis."
            )
        return token
