"""Streaming client for OpenAI-compatible chat-completion APIs."""

from open_completions.config import ClientConfig, load_config
from open_completions.errors import (
    ApiError,
    ArgumentParseError,
    CompletionError,
    DecodeError,
    RateLimitedError,
    StreamError,
    TransportError,
)
from open_completions.llm.client import AsyncCompletionClient
from open_completions.types import (
    LLMResponse,
    MessageEnd,
    RateLimitSnapshot,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallArgumentsDelta,
    ToolCallComplete,
    ToolCallStart,
    Usage,
)

__all__ = [
    "ApiError",
    "ArgumentParseError",
    "AsyncCompletionClient",
    "ClientConfig",
    "CompletionError",
    "DecodeError",
    "LLMResponse",
    "MessageEnd",
    "RateLimitSnapshot",
    "RateLimitedError",
    "StreamError",
    "StreamEvent",
    "TextDelta",
    "ToolCall",
    "ToolCallArgumentsDelta",
    "ToolCallComplete",
    "ToolCallStart",
    "TransportError",
    "Usage",
]
