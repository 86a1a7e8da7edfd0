"""
Error categories raised by the study-area pipeline.

Configuration errors are fatal. Remote-service errors are retryable and are
logged and propagated by the loaders. Data-quality problems never raise; they
are handled per record by the loaders and the flattener.
"""

from typing import Optional


class SeamapError(Exception):
    """Base class for all package errors."""
    pass


class ConfigurationError(SeamapError, ValueError):
    """Raised for malformed bounds, CRS choices, scales or config files."""
    pass


class BasemapUnavailableError(SeamapError):
    """Raised when the basemap cannot be fetched or does not cover the study area."""
    pass


class UnknownRegionError(ConfigurationError, BasemapUnavailableError):
    """Raised when a region name does not match any basemap feature."""
    pass


class LayerLookupError(SeamapError, LookupError):
    """Raised when a dataset code or layer code is not known to the catalog."""
    pass


class RemoteServiceError(SeamapError):
    """Raised when a remote data service fails.

    Attributes:
        service: Short name of the service (e.g. "obis", "erddap").
        url: The URL that was requested, if known.
        status: HTTP status code, if a response was received.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        url: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.service = service
        self.url = url
        self.status = status


class ServiceTimeoutError(RemoteServiceError):
    """Raised when a request times out (after the retry) or cannot connect."""
    pass


class RateLimitedError(RemoteServiceError):
    """Raised when the service answers HTTP 429."""
    pass


class MalformedResponseError(RemoteServiceError):
    """Raised when the payload cannot be parsed as the expected format."""
    pass
