"""Base class for rate-limited JSON clients."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Generic, Optional, Protocol, TypeVar

import requests

from teamcity_collector.net.rate_limiter import RateLimiter
from teamcity_collector.payloads import Decoded

T = TypeVar("T")


class _SessionWithGet(Protocol):
    def get(
        self,
        url: str,
        timeout: Any,
        headers: Optional[dict[str, str]] = None,
    ) -> Any: ...


class BaseClient(Generic[T]):
    """Provide rate-limited execution of outbound requests."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def _execute_with_rate_limit(
        self,
        operation: Callable[[], T],
        *,
        name: Optional[str] = None,
    ) -> T:
        """Run ``operation`` after waiting for rate-limiter availability."""
        label = name or getattr(operation, "__name__", "<anonymous>")
        self._rate_limiter.acquire()

        started_at = time.perf_counter()
        try:
            return operation()
        finally:
            elapsed_ms = (time.perf_counter() - started_at) * 1000.0
            if self._logger.isEnabledFor(logging.DEBUG):
                self._logger.debug(
                    "Operation %s completed in %.2f ms",
                    label,
                    elapsed_ms,
                )


class JsonHttpClient(BaseClient[Decoded[Any]]):
    """GET JSON documents, turning every transport problem into a failure.

    Timeouts, connection errors, non-200 statuses and unparsable bodies all
    come back as ``Decoded.failure`` so one bad call never aborts a run.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        *,
        session: Optional[_SessionWithGet] = None,
        timeout: tuple[float, float] = (20.0, 20.0),
        api_token: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(rate_limiter, logger=logger)
        self._session: _SessionWithGet = session or requests.Session()
        self._timeout = timeout
        self._api_token = api_token

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    def get_json(self, url: str, *, name: Optional[str] = None) -> Decoded[Any]:
        def _operation() -> Decoded[Any]:
            self._logger.debug("GET %s", url)
            try:
                response = self._session.get(
                    url, timeout=self._timeout, headers=self._headers()
                )
            except requests.Timeout as error:
                self._logger.warning("Timed out calling %s: %s", url, error)
                return Decoded.failure(f"timeout: {error}")
            except requests.RequestException as error:
                self._logger.warning("Request to %s failed: %s", url, error)
                return Decoded.failure(f"request failed: {error}")

            if response.status_code != 200:
                self._logger.warning(
                    "GET %s returned HTTP %s", url, response.status_code
                )
                return Decoded.failure(f"HTTP {response.status_code}")
            try:
                return Decoded(value=response.json())
            except ValueError as error:
                self._logger.error("Response from %s is not JSON: %s", url, error)
                return Decoded.failure("response body is not JSON")

        return self._execute_with_rate_limit(_operation, name=name or url)
