"""
Exception hierarchy for the depot index collector.

Every error raised by this package derives from DepotIndexError so
callers can decide per call site whether to skip, abort or carry on.
"""

from datetime import datetime, timezone


class DepotIndexError(Exception):
    """Base exception for depot index errors."""

    def __init__(
        self,
        message: str,
        *,
        app_id: int | None = None,
        job_id: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.app_id = app_id
        self.job_id = job_id
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)


class PicsConnectionError(DepotIndexError):
    """Raised when connecting or logging on to Steam fails."""

    pass


class PicsTimeoutError(DepotIndexError):
    """Raised when a PICS request does not complete in time."""

    pass


class PicsProtocolError(DepotIndexError):
    """Raised when a PICS response is malformed or unexpected."""

    pass


class CatalogListingError(DepotIndexError):
    """Raised when the full app list cannot be downloaded."""

    pass


class MetadataParseError(DepotIndexError):
    """Raised when an app's metadata tree cannot be interpreted."""

    pass


class PersistenceError(DepotIndexError):
    """Raised when the depot index cannot be written."""

    pass
