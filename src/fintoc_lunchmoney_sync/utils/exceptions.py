"""Custom exceptions for the sync application."""


class SyncError(Exception):
    """Base exception for sync errors."""

    pass


class UpstreamFetchError(SyncError):
    """Error reading from the bank or ledger API."""

    pass


class UpstreamWriteError(SyncError):
    """Error writing a transaction or balance to the ledger API."""

    pass


class ConfigurationError(SyncError):
    """Error in configuration."""

    pass


class ReportGenerationError(SyncError):
    """Error generating Excel report."""

    pass
