"""Repository activity ingestion and engineering metrics engine."""

__version__ = "0.1.0"
