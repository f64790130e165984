"""Retrying HTTP request executor.

Issues one logical POST, retrying transport failures, HTTP 429 and 5xx with
exponential backoff, and converts everything else into a typed error.  All
retry decisions are made here: once a successful response is handed back,
nothing downstream retries.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping

import httpx

from open_completions.errors import ApiError, RateLimitedError, TransportError
from open_completions.types import RateLimitSnapshot, RequestAttempt

from .backoff import RetryPolicy
from .rate_limit import LoggingRateLimitSink, RateLimitSink, extract_rate_limit

_logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]

_TOO_MANY_REQUESTS = 429


def _is_retryable_status(status: int) -> bool:
    return status == _TOO_MANY_REQUESTS or 500 <= status < 600


def _is_retryable_error(exc: httpx.HTTPError) -> bool:
    """Timeouts, connection errors and anything without an HTTP status."""
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    return not isinstance(exc, httpx.HTTPStatusError)


class RetryingExecutor:
    """Send requests through a shared ``httpx.AsyncClient`` with retries.

    Parameters
    ----------
    client:
        The (possibly shared) HTTP client.  Only its connection pool and
        default headers are used; no per-request state is kept on it.
    policy:
        Backoff configuration.  Defaults to :class:`RetryPolicy`.
    sink:
        Receives rate-limit snapshots of failed responses.
    sleep:
        Awaitable used between attempts (``asyncio.sleep`` by default).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: RetryPolicy | None = None,
        sink: RateLimitSink | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._client = client
        self.policy = policy or RetryPolicy()
        self._sink = sink if sink is not None else LoggingRateLimitSink()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        url: str,
        headers: Mapping[str, str] | None,
        body: bytes,
    ) -> httpx.Response:
        """POST *body* and return the first successful, fully read response."""
        return await self._send_with_retries(url, headers, body, stream=False)

    @asynccontextmanager
    async def stream(
        self,
        url: str,
        headers: Mapping[str, str] | None,
        body: bytes,
    ) -> AsyncIterator[httpx.Response]:
        """POST *body* and yield the successful response with its body unread.

        The response is closed when the context exits, including when the
        consumer is cancelled or abandons iteration.
        """
        response = await self._send_with_retries(url, headers, body, stream=True)
        try:
            yield response
        finally:
            await response.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _send_with_retries(
        self,
        url: str,
        headers: Mapping[str, str] | None,
        body: bytes,
        *,
        stream: bool,
    ) -> httpx.Response:
        max_retries = self.policy.max_retries
        attempt = 0

        while True:
            request = self._client.build_request(
                "POST", url, headers=headers, content=body,
            )
            try:
                response = await self._client.send(request, stream=stream)
            except httpx.HTTPError as e:
                if attempt < max_retries and _is_retryable_error(e):
                    plan = RequestAttempt(
                        index=attempt, delay=self.policy.delay(attempt),
                    )
                    _logger.warning(
                        "Request to %s failed (attempt %d/%d): %s; "
                        "retrying in %.2fs",
                        url, attempt + 1, max_retries + 1, e, plan.delay,
                    )
                    await self._sleep(plan.delay)
                    attempt += 1
                    continue
                raise TransportError(f"request failed: {e}", original_error=e) from e

            if response.is_success:
                return response

            try:
                await response.aread()
            except httpx.HTTPError:
                _logger.debug("Could not read error body from %s", url)
            finally:
                await response.aclose()

            status = response.status_code
            snapshot = extract_rate_limit(response.headers, self._sink)

            if _is_retryable_status(status) and attempt < max_retries:
                plan = self._plan(attempt, snapshot)
                _logger.warning(
                    "API returned %d (attempt %d/%d), retrying in %.2fs%s",
                    status, attempt + 1, max_retries + 1, plan.delay,
                    " (Retry-After)" if plan.retry_after_override else "",
                )
                await self._sleep(plan.delay)
                attempt += 1
                continue

            if status == _TOO_MANY_REQUESTS:
                raise RateLimitedError(
                    f"rate limited after {attempt + 1} attempt(s)",
                    snapshot=snapshot,
                )
            raise ApiError(status, _safe_text(response))

    def _plan(self, attempt: int, snapshot: RateLimitSnapshot) -> RequestAttempt:
        """Backoff delay for *attempt*, stretched to honour ``Retry-After``."""
        delay = self.policy.delay(attempt)
        hint = snapshot.retry_after
        if self.policy.respect_retry_after and hint is not None and hint > delay:
            return RequestAttempt(index=attempt, delay=hint, retry_after_override=True)
        return RequestAttempt(index=attempt, delay=delay)


def _safe_text(response: httpx.Response) -> str:
    try:
        return response.text
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return ""
