"""Exponential backoff policy for retried HTTP requests."""

from __future__ import annotations

from dataclasses import dataclass

# Exponent cap -- 2**10 is already far beyond any sensible max_delay
_MAX_EXPONENT = 10


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how long to back off on transient failures.

    Parameters
    ----------
    max_retries:
        Retries after the first attempt (so up to ``max_retries + 1`` sends).
    base_delay:
        Delay in seconds before the first retry.
    max_delay:
        Upper bound in seconds for any computed delay.
    respect_retry_after:
        Wait at least as long as a server-supplied ``Retry-After`` header.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    respect_retry_after: bool = True

    def delay(self, attempt: int) -> float:
        """Seconds to sleep after failed attempt *attempt* (0-based)."""
        exponent = min(max(attempt, 0), _MAX_EXPONENT)
        return min(self.base_delay * (2 ** exponent), self.max_delay)
