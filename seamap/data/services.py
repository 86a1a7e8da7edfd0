"""
HTTP access to the remote data services.

`ServiceClient` owns a `requests.Session` for the lifetime of a `with` block
so the connection pool is released on every exit path. Each request carries
an explicit timeout; timeouts and connection failures are retried (once by
default) before surfacing as `ServiceTimeoutError`. HTTP failures are mapped
onto the `RemoteServiceError` hierarchy.
"""

import logging
from typing import Any, Dict, Optional

import requests

from seamap.errors import (
    MalformedResponseError,
    RateLimitedError,
    RemoteServiceError,
    ServiceTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
DEFAULT_RETRIES = 1
USER_AGENT = "seamap/0.1.0"


class ServiceClient:
    """A scoped client for one remote data service.

    Attributes:
        service: Short name used in log messages and errors.
        timeout: Per-request timeout in seconds.
        retries: How many times a timed-out or unreachable request is retried.
    """

    def __init__(
        self,
        service: str = "http",
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        session: Optional[requests.Session] = None,
    ):
        self.service = service
        self.timeout = timeout
        self.retries = retries
        self.session = session
        self._owns_session = session is None

    def __enter__(self) -> "ServiceClient":
        self._ensure_session()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self):
        return f"ServiceClient(service={self.service!r}, timeout={self.timeout!r}, retries={self.retries!r})"

    def _ensure_session(self) -> requests.Session:
        if self.session is None:
            self.session = requests.Session()
            self.session.headers.update({"User-Agent": USER_AGENT})
            self._owns_session = True
        return self.session

    def close(self) -> None:
        """Closes the session if this client created it."""
        if self._owns_session and self.session is not None:
            self.session.close()
            self.session = None

    def get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """
        Performs a GET request with timeout and retry.

        Raises:
            ServiceTimeoutError: If every attempt timed out or failed to connect.
            RateLimitedError: If the service answered HTTP 429.
            RemoteServiceError: For any other HTTP or transport failure.
        """
        session = self._ensure_session()
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = session.get(url, params=params, timeout=self.timeout)
                break
            except (requests.Timeout, requests.ConnectionError) as e:
                if attempt < attempts:
                    logger.warning(f"{self.service}: request to {url} failed ({e}); retrying ({attempt}/{self.retries})")
                    continue
                raise ServiceTimeoutError(
                    f"{self.service}: no response from {url} after {attempts} attempt(s): {e}",
                    service=self.service,
                    url=url,
                ) from e
            except requests.RequestException as e:
                raise RemoteServiceError(
                    f"{self.service}: request to {url} failed: {e}", service=self.service, url=url
                ) from e

        self._check_status(response, url)
        return response

    def _check_status(self, response: requests.Response, url: str) -> None:
        status = response.status_code
        if status == 429:
            raise RateLimitedError(
                f"{self.service}: rate limited by {url}", service=self.service, url=url, status=status
            )
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise RemoteServiceError(
                f"{self.service}: HTTP {status} from {url}: {response.text[:200]}",
                service=self.service,
                url=url,
                status=status,
            ) from e

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET and decode a JSON payload."""
        response = self.get(url, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{self.service}: response from {url} is not valid JSON: {response.text[:200]}",
                service=self.service,
                url=url,
                status=response.status_code,
            ) from e

    def get_bytes(self, url: str, params: Optional[Dict[str, Any]] = None) -> bytes:
        return self.get(url, params=params).content
