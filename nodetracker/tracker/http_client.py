"""Shared async HTTP client for discovery and control-plane probes.

Wraps :class:`httpx.AsyncClient` with:

* **Automatic retries** — exponential back-off with random jitter via
  :mod:`tenacity`.  Transport errors, 5xx, and 429 are retried; any other
  non-2xx status fails immediately.
* **Rate-limit awareness** — HTTP 429 waits for the ``Retry-After`` header
  before the next attempt.
* **Per-call attempt budget** — discovery uses the configured budget while
  probes pass ``max_attempts=1``: a failed probe is recorded, not retried.

Errors are raised as :mod:`httpx` exceptions (:class:`httpx.TransportError`,
:class:`httpx.HTTPStatusError`); callers translate them into their own layer's
exception.

Typical usage::

    from nodetracker.tracker.http_client import NodeHttpClient

    async with NodeHttpClient(timeout=10.0) as client:
        response = await client.get("https://stats.example.com/nodes")
        data = response.json()
"""

from __future__ import annotations

import logging
import random
from types import TracebackType
from typing import Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

__all__ = ["NodeHttpClient"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: HTTP status codes that signal a transient server-side fault.
_RETRYABLE_STATUS: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})

_DEFAULT_TIMEOUT: Final[float] = 10.0
_DEFAULT_MAX_ATTEMPTS: Final[int] = 3

#: Hard cap on exponential back-off base before adding jitter (seconds).
_MAX_BACKOFF_BASE: Final[float] = 30.0

#: Upper bound on jitter added on top of the exponential base (seconds).
_MAX_BACKOFF_JITTER: Final[float] = 5.0


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS
    return False


def _parse_retry_after(response: httpx.Response) -> float | None:
    header = response.headers.get("retry-after", "")
    if not header:
        return None
    try:
        return max(float(header), 1.0)
    except ValueError:
        logger.debug("Could not parse Retry-After header %r.", header)
        return None


def _retry_wait(retry_state: RetryCallState) -> float:
    """Compute the wait before the next attempt.

    A 429 carrying ``Retry-After`` is honoured exactly; everything else uses
    exponential back-off (1 s, 2 s, 4 s, ...) plus jitter.
    """
    if retry_state.outcome is not None:
        exc = retry_state.outcome.exception()
        if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429:
            retry_after = _parse_retry_after(exc.response)
            if retry_after is not None:
                return retry_after

    attempt = max(retry_state.attempt_number, 1)
    base = min(2.0 ** (attempt - 1), _MAX_BACKOFF_BASE)
    jitter = random.uniform(0.0, min(base, _MAX_BACKOFF_JITTER))
    return base + jitter


class NodeHttpClient:
    """Async HTTP client shared by discovery and the prober.

    Use as an ``async with`` context manager (preferred) or call
    :meth:`close` explicitly.

    Args:
        timeout: Overall per-request timeout in seconds.
        max_attempts: Default total attempts including the initial try (≥ 1).
        transport: Optional :class:`httpx.AsyncBaseTransport`, e.g. an
            :class:`httpx.MockTransport` in tests.

    Raises:
        ValueError: If ``max_attempts`` is less than 1.
    """

    def __init__(
        self,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")

        self._timeout = httpx.Timeout(timeout)
        self._max_attempts = max_attempts
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> NodeHttpClient:
        self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def get(self, url: str, *, max_attempts: int | None = None) -> httpx.Response:
        """Perform an HTTP GET with retries.

        Args:
            url: Absolute request URL.
            max_attempts: Overrides the client's default attempt budget.

        Returns:
            The :class:`httpx.Response` on HTTP 2xx.

        Raises:
            httpx.HTTPStatusError: Non-2xx status after the budget is spent.
            httpx.TransportError: Network failure after the budget is spent.
        """
        attempts = max_attempts or self._max_attempts

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "HTTP GET %s — attempt %d/%d failed (%s). Retrying in %.1f s…",
                url,
                rs.attempt_number,
                attempts,
                type(exc).__name__ if exc else "?",
                _retry_wait(rs),
            )

        response: httpx.Response | None = None
        async for attempt in AsyncRetrying(
            wait=_retry_wait,
            stop=stop_after_attempt(attempts),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
            before_sleep=_before_sleep,
        ):
            with attempt:
                response = await self._single_get(url)

        assert response is not None, "tenacity exited without a response or exception"
        return response

    async def close(self) -> None:
        """Close the underlying client.  Safe to call more than once."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("NodeHttpClient session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
            logger.debug("NodeHttpClient session opened.")
        return self._http

    async def _single_get(self, url: str) -> httpx.Response:
        client = self._ensure_client()
        try:
            response = await client.get(url)
        except httpx.TransportError:
            logger.debug("Transport error on GET %s.", url, exc_info=True)
            raise

        logger.debug("HTTP GET %s → %d", url, response.status_code)
        response.raise_for_status()
        return response
