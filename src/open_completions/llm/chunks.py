"""Wire DTOs for chat-completion and Responses-API payloads.

Only the fields the client reads are modelled; everything else the provider
sends is ignored so that upstream additions never break decoding.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from open_completions.errors import DecodeError


class FinishReason(str, enum.Enum):
    """Terminal reasons the interpreter distinguishes."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Streaming chunks (/chat/completions with stream=true)
# ---------------------------------------------------------------------------

class FunctionDelta(_WireModel):
    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(_WireModel):
    index: int
    id: str | None = None
    type: str | None = None
    function: FunctionDelta | None = None


class MessageDelta(_WireModel):
    role: str | None = None
    content: str | None = None
    tool_calls: list[ToolCallDelta] | None = None


class ChunkChoice(_WireModel):
    index: int = 0
    delta: MessageDelta = Field(default_factory=MessageDelta)
    # Kept as a plain string: providers send values outside FinishReason
    finish_reason: str | None = None


class UsageDTO(_WireModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionChunk(_WireModel):
    """One SSE ``data:`` payload of a streamed chat completion."""

    id: str | None = None
    object: str | None = None
    created: int | None = None
    model: str | None = None
    choices: list[ChunkChoice] = Field(default_factory=list)
    usage: UsageDTO | None = None


def parse_chunk(payload: str) -> ChatCompletionChunk:
    """Deserialize one frame payload, raising :class:`DecodeError`."""
    try:
        return ChatCompletionChunk.model_validate_json(payload)
    except ValidationError as e:
        raise DecodeError(f"malformed chunk: {payload[:200]!r}", original_error=e) from e


# ---------------------------------------------------------------------------
# Non-streaming response (/chat/completions)
# ---------------------------------------------------------------------------

class FunctionCall(_WireModel):
    name: str = ""
    arguments: str = ""


class ResponseToolCall(_WireModel):
    id: str = ""
    type: str | None = None
    function: FunctionCall = Field(default_factory=FunctionCall)


class ResponseMessage(_WireModel):
    role: str = "assistant"
    content: str | None = None
    tool_calls: list[ResponseToolCall] | None = None


class CompletionChoice(_WireModel):
    index: int = 0
    message: ResponseMessage = Field(default_factory=ResponseMessage)
    finish_reason: str | None = None


class ChatCompletion(_WireModel):
    id: str | None = None
    model: str | None = None
    choices: list[CompletionChoice] = Field(default_factory=list)
    usage: UsageDTO | None = None


def parse_completion(body: bytes | str) -> ChatCompletion:
    """Deserialize a full chat completion body, raising :class:`DecodeError`."""
    try:
        return ChatCompletion.model_validate_json(body)
    except ValidationError as e:
        raise DecodeError("malformed chat completion response", original_error=e) from e


# ---------------------------------------------------------------------------
# Responses API stream events (/responses with stream=true)
# ---------------------------------------------------------------------------

class ResponsesResult(_WireModel):
    """Non-streaming ``/responses`` body.  ``output`` shape varies by model."""

    id: str | None = None
    model: str | None = None
    status: str | None = None
    output: Any = None
    usage: dict[str, Any] | None = None


def parse_responses_result(body: bytes | str) -> ResponsesResult:
    """Deserialize a full Responses-API body, raising :class:`DecodeError`."""
    try:
        return ResponsesResult.model_validate_json(body)
    except ValidationError as e:
        raise DecodeError("malformed responses body", original_error=e) from e


class ResponseStreamEvent(BaseModel):
    """Type-tagged Responses-API event.  Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    type: str
    delta: str | None = None
    text: str | None = None
    usage: dict[str, Any] | None = None
    response: dict[str, Any] | None = None
    error: Any = None


def parse_response_event(payload: str) -> ResponseStreamEvent:
    """Deserialize one Responses-API frame, raising :class:`DecodeError`."""
    try:
        return ResponseStreamEvent.model_validate_json(payload)
    except ValidationError as e:
        raise DecodeError(f"malformed response event: {payload[:200]!r}", original_error=e) from e
