"""Exception hierarchy for open-completions.

Every failure the client can surface is one of these types, so callers can
handle them without inspecting raw httpx, pydantic or JSON internals.
"""

from __future__ import annotations

from typing import Any

from open_completions.types import RateLimitSnapshot


class CompletionError(Exception):
    """Base exception for all client errors.

    Attributes:
        message: Human-readable error description.
        original_error: The upstream exception that caused this error, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
    ) -> None:
        self.message = message
        self.original_error = original_error
        super().__init__(message)


class TransportError(CompletionError):
    """Connection failure, timeout, or a body that ended prematurely."""


class RateLimitedError(CompletionError):
    """HTTP 429 persisted after all retries were used.

    Attributes:
        snapshot: Rate-limit headers of the last 429 response.
        retry_after: Seconds the server asked us to wait, if it said so.
        reset_at: Provider reset marker (request reset preferred).
    """

    def __init__(
        self,
        message: str,
        snapshot: RateLimitSnapshot,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error)
        self.snapshot = snapshot
        self.retry_after = snapshot.retry_after
        self.reset_at = snapshot.reset_at


class ApiError(CompletionError):
    """Non-success HTTP status that is not (or no longer) retried."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"API returned non-success status {status}: {body}")
        self.status = status
        self.body = body


class DecodeError(CompletionError):
    """Invalid UTF-8, malformed JSON frame, or malformed response body."""


class ArgumentParseError(DecodeError):
    """Accumulated tool-call arguments did not parse as JSON."""

    def __init__(
        self,
        index: int,
        raw_arguments: str,
        original_error: Exception | None = None,
    ) -> None:
        preview = raw_arguments[:200]
        super().__init__(
            f"tool call {index}: arguments are not valid JSON: {preview!r}",
            original_error=original_error,
        )
        self.index = index
        self.raw_arguments = raw_arguments


class StreamError(CompletionError):
    """The provider reported an error event inside a successful stream."""

    def __init__(self, payload: Any) -> None:
        super().__init__(f"provider stream error: {payload}")
        self.payload = payload
