"""Rate-limit header extraction and headroom diagnostics.

Providers report quota state in ``x-ratelimit-*`` headers and may ask for a
pause with ``Retry-After``.  Extraction never fails: anything missing or
malformed simply becomes ``None``.
"""

from __future__ import annotations

import logging
from typing import Mapping, Protocol

from open_completions.types import RateLimitSnapshot

_logger = logging.getLogger(__name__)

# Remaining counts at or below these absolute floors count as low headroom
_LOW_REQUESTS = 5
_LOW_TOKENS = 1000
# ... as does anything below this share of the limit
_LOW_FRACTION = 0.05


class RateLimitSink(Protocol):
    """Receives a snapshot for every non-success response the executor sees."""

    def low_headroom(self, snapshot: RateLimitSnapshot) -> None:
        ...

    def observed(self, snapshot: RateLimitSnapshot) -> None:
        ...


class LoggingRateLimitSink:
    """Default sink: WARNING when headroom is low, DEBUG otherwise."""

    def low_headroom(self, snapshot: RateLimitSnapshot) -> None:
        _logger.warning(
            "Rate limit headroom low: requests %s/%s (reset %s), "
            "tokens %s/%s (reset %s)",
            snapshot.remaining_requests, snapshot.limit_requests,
            snapshot.reset_requests,
            snapshot.remaining_tokens, snapshot.limit_tokens,
            snapshot.reset_tokens,
        )

    def observed(self, snapshot: RateLimitSnapshot) -> None:
        _logger.debug(
            "Rate limit: requests %s/%s, tokens %s/%s, retry-after %s",
            snapshot.remaining_requests, snapshot.limit_requests,
            snapshot.remaining_tokens, snapshot.limit_tokens,
            snapshot.retry_after,
        )


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _parse_retry_after(value: str | None) -> float | None:
    """``Retry-After`` as whole seconds.  HTTP-date forms are ignored."""
    seconds = _parse_int(value)
    if seconds is None or seconds < 0:
        return None
    return float(seconds)


def _is_low(remaining: int | None, limit: int | None, floor: int) -> bool:
    if remaining is None:
        return False
    if remaining < floor:
        return True
    return bool(limit) and remaining < limit * _LOW_FRACTION


def is_low_headroom(snapshot: RateLimitSnapshot) -> bool:
    """True when either the request or the token budget is nearly spent."""
    return _is_low(
        snapshot.remaining_requests, snapshot.limit_requests, _LOW_REQUESTS,
    ) or _is_low(
        snapshot.remaining_tokens, snapshot.limit_tokens, _LOW_TOKENS,
    )


def extract_rate_limit(
    headers: Mapping[str, str],
    sink: RateLimitSink | None = None,
) -> RateLimitSnapshot:
    """Build a :class:`RateLimitSnapshot` from response *headers*.

    If *sink* is given it is notified; sink failures are logged and never
    propagate.
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    snapshot = RateLimitSnapshot(
        limit_requests=_parse_int(lowered.get("x-ratelimit-limit-requests")),
        remaining_requests=_parse_int(
            lowered.get("x-ratelimit-remaining-requests"),
        ),
        limit_tokens=_parse_int(lowered.get("x-ratelimit-limit-tokens")),
        remaining_tokens=_parse_int(
            lowered.get("x-ratelimit-remaining-tokens"),
        ),
        reset_requests=lowered.get("x-ratelimit-reset-requests"),
        reset_tokens=lowered.get("x-ratelimit-reset-tokens"),
        retry_after=_parse_retry_after(lowered.get("retry-after")),
    )

    if sink is not None:
        try:
            if is_low_headroom(snapshot):
                sink.low_headroom(snapshot)
            else:
                sink.observed(snapshot)
        except Exception:
            _logger.exception("Rate limit sink %r raised", sink)

    return snapshot
