"""Entry point wiring configuration, data source, analysis and reporting."""

from __future__ import annotations

import logging
import sys

from .cli import parse_args
from .config import load_config
from .data_sources import get_data_source
from .engine import analyze_repository, date_range_for_days
from .errors import (
    ApiError,
    AuthenticationError,
    CancelledError,
    ConfigurationError,
    ValidationError,
)
from .rate_limiter import RateLimiter
from .stats import generate_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4
EXIT_CANCELLED = 130


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def orchestrate_metrics_generation() -> int:
    """Run one analysis from CLI arguments and print the report.

    Returns:
        Process exit code: 0 success, 2 configuration or validation error,
        3 authentication error, 4 API error, 130 cancelled, 1 unexpected.
    """
    try:
        args = parse_args()
        configure_logging(verbose=args.verbose)

        config = load_config(
            repo_url=args.repo_url,
            days=args.days,
            batch_width=args.batch_width,
        )
        rate_limiter = RateLimiter()
        data_source = get_data_source(config, rate_limiter=rate_limiter)
        date_range = date_range_for_days(config.days)
        repository = config.repository

        print(f"Analyzing repository '{repository.full_name}' over the last {config.days} days...")
        analysis = analyze_repository(data_source, config.repo_url, date_range).unwrap()

        print(generate_report(repo_name=repository.full_name, analysis=analysis))
        logger.info(rate_limiter.status_message(), extra={"requests": rate_limiter.request_count})
        return EXIT_OK
    except (ConfigurationError, ValidationError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except ApiError as exc:
        print(f"ERROR: GitHub API failure ({exc.code}): {exc}", file=sys.stderr)
        return EXIT_API
    except (CancelledError, KeyboardInterrupt):
        print("Analysis cancelled.", file=sys.stderr)
        return EXIT_CANCELLED
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected failure during analysis")
        print(f"ERROR: Unexpected failure: {exc}", file=sys.stderr)
        return EXIT_UNEXPECTED


def main() -> None:
    sys.exit(orchestrate_metrics_generation())


if __name__ == "__main__":
    main()
