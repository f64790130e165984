"""Shared data types for open-completions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


# ---------------------------------------------------------------------------
# Retry / rate-limit types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RequestAttempt:
    """One planned retry: which attempt failed and how long to wait."""

    index: int
    delay: float  # seconds
    retry_after_override: bool = False


@dataclass(frozen=True)
class RateLimitSnapshot:
    """Rate-limit headers of a single HTTP response.

    Reset markers are kept as the provider sends them (``"1s"``,
    ``"6m0s"``, ...); they are not guaranteed to be parseable durations.
    """

    limit_requests: int | None = None
    remaining_requests: int | None = None
    limit_tokens: int | None = None
    remaining_tokens: int | None = None
    reset_requests: str | None = None
    reset_tokens: str | None = None
    retry_after: float | None = None  # seconds

    @property
    def reset_at(self) -> str | None:
        """Best available reset marker (requests first, then tokens)."""
        return self.reset_requests or self.reset_tokens


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextDelta:
    """A fragment of assistant text."""

    text: str


@dataclass(frozen=True)
class ToolCallStart:
    """A tool call at *index* got its id and/or name."""

    index: int
    id: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class ToolCallArgumentsDelta:
    """One raw fragment of a tool call's JSON arguments."""

    index: int
    fragment: str


@dataclass(frozen=True)
class ToolCallComplete:
    """A fully reconstructed tool call with parsed arguments."""

    index: int
    id: str
    name: str
    arguments: Any


@dataclass(frozen=True)
class MessageEnd:
    """The assistant turn is over.  Always the last event of a stream."""


@dataclass(frozen=True)
class Usage:
    """Token accounting reported by the provider."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


StreamEvent = Union[
    TextDelta,
    ToolCallStart,
    ToolCallArgumentsDelta,
    ToolCallComplete,
    MessageEnd,
    Usage,
]


# ---------------------------------------------------------------------------
# Non-streaming response
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    """A tool call requested by the model in a non-streaming response."""

    id: str
    name: str
    arguments: Any


@dataclass
class LLMResponse:
    """Unified non-streaming chat completion result."""

    content: str = ""
    role: str = "assistant"
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str = ""
    usage: Usage | None = None
    model: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0
