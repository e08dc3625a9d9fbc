"""
Async HTTP access to the package registry.

:class:`HTTPClient` wraps a shared :class:`httpx.AsyncClient` (HTTP/2)
and sorts every failure into one of two buckets the installer cares
about:

- :class:`~minipm.exceptions.NetworkError`: the server answered with a
  client error (4xx other than 429). Repeating the request will not help.
- :class:`~minipm.exceptions.TransientIOError`: timeouts, dropped
  connections, 5xx answers and exhausted 429 budgets. The client retries
  these itself up to ``max_retries`` times, then gives up with this error
  so callers such as the installation scheduler can decide what to do.
"""

from __future__ import annotations

import time
import httpx
import random
import asyncio
from typing import Any, Optional, Dict, cast

from minipm.utils.logger import get_logger
from minipm.__version__ import __version__
from minipm.exceptions import NetworkError, TransientIOError
from minipm.constants import (
    DEFAULT_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    USER_AGENT_TEMPLATE,
)

logger = get_logger("http")


class _RetryableStatus(Exception):
    """Internal signal: the response status is worth another attempt."""

    def __init__(self, status_code: int) -> None:
        super().__init__(status_code)
        self.status_code = status_code


class HTTPClient:
    """Registry HTTP client with retries, pacing and a concurrency cap.

    Args:
        timeout: Per-request timeout in seconds.
        max_retries: Extra attempts after the first one for transient
            failures. Artifact downloads use ``max_retries=0`` because the
            installation scheduler runs its own retry loop.
        rate_limit_delay: Minimum spacing (seconds) between requests.
        verify_ssl: Verify TLS certificates.
        user_agent: ``User-Agent`` header; defaults to ``minipm/<version>``.
        max_concurrency: Requests allowed in flight at once.

    Example:
        >>> async with HTTPClient(timeout=10) as client:
        ...     packument = await client.get_json("https://registry.npmjs.org/left-pad")
    """

    def __init__(
        self,
        *,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        rate_limit_delay: float = 0.0,
        verify_ssl: bool = True,
        user_agent: Optional[str] = None,
        max_concurrency: int = 10,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limit_delay = rate_limit_delay
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent or USER_AGENT_TEMPLATE.format(version=__version__)
        self.max_concurrency = max_concurrency

        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._pacing_lock = asyncio.Lock()
        self._next_slot: float = 0.0
        self._max_429_retries: int = 5

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "HTTPClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                http2=True,
                verify=self.verify_ssl,
                follow_redirects=True,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "application/json, application/octet-stream",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    async def _pace(self) -> None:
        """Hold the caller until its request slot comes up."""
        if self.rate_limit_delay <= 0:
            return

        async with self._pacing_lock:
            now = time.monotonic()
            wait = self._next_slot - now
            self._next_slot = max(now, self._next_slot) + self.rate_limit_delay
        if wait > 0:
            await asyncio.sleep(wait)

    async def _send_once(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Issue one request and classify its status.

        Raises:
            NetworkError: 4xx other than 429.
            _RetryableStatus: 5xx.
        """
        client = await self._ensure_client()
        await self._pace()

        async with self._semaphore:
            response = await client.request(method, url, **kwargs)

        status = response.status_code
        if status >= 500:
            raise _RetryableStatus(status)
        if 400 <= status < 500 and status != 429:
            raise NetworkError(
                f"HTTP {status} error for {url}",
                url=url,
                status_code=status,
                response_body=response.text,
            )
        return response

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Run a request through the retry policy.

        429 answers are waited out using ``Retry-After`` and are budgeted
        separately from ordinary retries.
        """
        clean_url = url.strip().strip("\"'")
        attempts = self.max_retries + 1
        throttled = 0
        attempt = 0
        cause: Optional[BaseException] = None
        last_status: Optional[int] = None

        while attempt < attempts:
            try:
                response = await self._send_once(method, clean_url, **kwargs)
            except httpx.TimeoutException as exc:
                cause = exc
                logger.warning("Request timeout (%d/%d): %s", attempt + 1, attempts, clean_url)
            except httpx.TransportError as exc:
                cause = exc
                logger.warning("Connection error (%d/%d): %s", attempt + 1, attempts, exc)
            except _RetryableStatus as exc:
                cause = exc
                last_status = exc.status_code
                logger.warning(
                    "HTTP %d (%d/%d): %s", exc.status_code, attempt + 1, attempts, clean_url
                )
            else:
                if response.status_code != 429:
                    return response

                throttled += 1
                if throttled > self._max_429_retries:
                    raise TransientIOError(
                        f"Rate limit exceeded after {self._max_429_retries} retries",
                        url=clean_url,
                        status_code=429,
                    )
                retry_after = int(response.headers.get("Retry-After", "1"))
                logger.warning(
                    "Rate limited (429), waiting %ds (%d/%d)",
                    retry_after,
                    throttled,
                    self._max_429_retries,
                )
                await asyncio.sleep(retry_after)
                continue

            attempt += 1
            if attempt < attempts:
                delay = self._backoff(attempt - 1)
                logger.debug("Retrying %s in %.2fs", clean_url, delay)
                await asyncio.sleep(delay)

        raise TransientIOError(
            f"Request failed after {attempts} attempt(s): {clean_url}",
            url=clean_url,
            status_code=last_status,
        ) from cause

    @staticmethod
    def _backoff(attempt: int) -> float:
        return (2**attempt) + random.uniform(0.0, 0.3)

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET ``url`` under the retry policy."""
        return await self._request_with_retry("GET", url, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        """GET ``url`` and decode a JSON object body (e.g. a packument).

        Raises:
            NetworkError: The body is not JSON or not an object.
        """
        response = await self.get(url, **kwargs)

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"Invalid JSON response from {url}",
                url=url,
                response_body=response.text,
            ) from exc

        if not isinstance(data, dict):
            raise NetworkError(
                f"Expected JSON object from {url}",
                url=url,
                response_body=response.text,
            )
        return cast(Dict[str, Any], data)

    async def get_bytes(self, url: str, **kwargs: Any) -> bytes:
        """GET ``url`` and return the raw body (e.g. a tarball)."""
        response = await self.get(url, **kwargs)
        return response.content
