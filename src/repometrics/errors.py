"""Custom exception types for the repository metrics engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional


class MetricsEngineError(Exception):
    """Base exception for all recoverable metrics engine errors."""

    code = "UNKNOWN"


class ConfigurationError(MetricsEngineError):
    """Raised when runtime configuration values are missing or invalid."""

    code = "CONFIGURATION"


class ValidationError(MetricsEngineError):
    """Raised when input records or parameters do not meet expected constraints."""

    code = "VALIDATION"


class AuthenticationError(MetricsEngineError):
    """Raised when GitHub credentials are unavailable, invalid, or expired."""

    code = "AUTH"


class CancelledError(MetricsEngineError):
    """Raised when a fetch observes the cancellation signal.

    ``partial_records`` holds whatever was accumulated before the signal was
    seen; the caller decides whether to keep it.
    """

    code = "ABORTED"

    def __init__(self, message: str, partial_records: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.partial_records: List[Any] = list(partial_records or [])


class ApiError(MetricsEngineError):
    """Raised when a GitHub API request fails or returns an unexpected response."""

    code = "NETWORK"


class NotFoundError(ApiError):
    """Raised when a repository or resource is absent or inaccessible."""

    code = "NOT_FOUND"


class RateLimitExceededError(ApiError):
    """Raised when the GitHub API quota is exhausted."""

    code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        message: str,
        reset_at: Optional[datetime] = None,
        retry_after_seconds: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.reset_at = reset_at
        self.retry_after_seconds = retry_after_seconds


class NetworkError(ApiError):
    """Raised when the transport fails before a usable response is received."""

    code = "NETWORK"


class UnknownError(ApiError):
    """Raised when a failure cannot be classified more precisely."""

    code = "UNKNOWN"
