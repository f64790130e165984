"""Transport, framing and interpretation layers for open-completions."""

from open_completions.llm.backoff import RetryPolicy
from open_completions.llm.chunks import ChatCompletionChunk, parse_chunk
from open_completions.llm.executor import RetryingExecutor
from open_completions.llm.interpreter import DeltaInterpreter
from open_completions.llm.rate_limit import (
    LoggingRateLimitSink,
    RateLimitSink,
    extract_rate_limit,
)
from open_completions.llm.responses import ResponsesInterpreter
from open_completions.llm.sse import FrameDecoder, aiter_frames

__all__ = [
    "ChatCompletionChunk",
    "DeltaInterpreter",
    "FrameDecoder",
    "LoggingRateLimitSink",
    "RateLimitSink",
    "ResponsesInterpreter",
    "RetryPolicy",
    "RetryingExecutor",
    "aiter_frames",
    "extract_rate_limit",
    "parse_chunk",
]
