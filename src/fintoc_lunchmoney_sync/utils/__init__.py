"""Utility modules."""

from .exceptions import (
    SyncError,
    UpstreamFetchError,
    UpstreamWriteError,
    ConfigurationError,
    ReportGenerationError,
)
from .durations import parse_duration
from .logging_config import setup_logging

__all__ = [
    "SyncError",
    "UpstreamFetchError",
    "UpstreamWriteError",
    "ConfigurationError",
    "ReportGenerationError",
    "parse_duration",
    "setup_logging",
]
