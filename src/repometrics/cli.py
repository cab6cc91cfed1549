"""Command-line argument parsing for the repository metrics engine."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from .config import DEFAULT_BATCH_WIDTH


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for a repository analysis.

    Returns:
        Parsed CLI arguments containing the repository URL, days of history,
        comment fetch batch width and verbosity.
    """
    parser = argparse.ArgumentParser(
        prog="repometrics",
        description=(
            "Analyze a GitHub repository's activity: contributors, PR throughput, "
            "weekly change volume and deployment frequency (DORA)."
        ),
    )

    parser.add_argument(
        "--repo-url",
        required=True,
        help="GitHub repository URL, e.g. https://github.com/owner/repo.",
    )
    parser.add_argument(
        "--days",
        type=_positive_int,
        default=30,
        help="Number of days of history to analyze (default: 30).",
    )
    parser.add_argument(
        "--batch-width",
        type=_positive_int,
        default=DEFAULT_BATCH_WIDTH,
        help=f"Concurrent review comment fetches per batch (default: {DEFAULT_BATCH_WIDTH}).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser.parse_args(argv)
