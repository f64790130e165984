"""Async client for OpenAI-compatible completion APIs.

Uses ``httpx.AsyncClient`` and exposes ``async def chat()`` for single-shot
completions and async generators for streamed ones.  Retries happen only
before the first byte of a successful response; once streaming starts any
failure ends the stream with an error.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncGenerator, Callable

import httpx

from open_completions.config import ClientConfig
from open_completions.errors import (
    ArgumentParseError,
    DecodeError,
    TransportError,
)
from open_completions.types import (
    LLMResponse,
    StreamEvent,
    TextDelta,
    ToolCall,
    Usage,
)

from .chunks import (
    parse_chunk,
    parse_completion,
    parse_response_event,
    parse_responses_result,
)
from .executor import RetryingExecutor, SleepFn
from .interpreter import DeltaInterpreter
from .rate_limit import RateLimitSink
from .responses import ResponsesInterpreter, extract_output_text, extract_usage
from .sse import FrameDecoder, aiter_frames

_logger = logging.getLogger(__name__)

_CHAT_PATH = "/chat/completions"
_RESPONSES_PATH = "/responses"
_SSE_HEADERS = {"Accept": "text/event-stream"}


class AsyncCompletionClient:
    """Client for one OpenAI-compatible endpoint.

    The underlying connection pool is shared by every call made through this
    client; each call gets its own frame decoder and interpreter, so
    concurrent streams never share mutable state.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        rate_limit_sink: RateLimitSink | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config
        self._owns_client = http_client is None

        if http_client is None:
            headers = {
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
                **config.extra_headers,
            }
            http_client = httpx.AsyncClient(
                base_url=config.base_url,
                headers=headers,
                timeout=httpx.Timeout(
                    config.timeout,
                    connect=config.connect_timeout,
                    read=config.stream_read_timeout,
                ),
            )
        self._client = http_client
        self._executor = RetryingExecutor(
            http_client, config.retry, rate_limit_sink, sleep,
        )

    async def __aenter__(self) -> AsyncCompletionClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Non-streaming chat
    # ------------------------------------------------------------------

    async def chat(self, payload: dict[str, Any]) -> LLMResponse:
        """Send a non-streaming chat completion request."""
        body = _encode({**payload, "stream": False})

        start = time.monotonic()
        resp = await self._executor.execute(_CHAT_PATH, None, body)
        latency = (time.monotonic() - start) * 1000

        completion = parse_completion(resp.content)
        if not completion.choices:
            raise DecodeError("response has no choices")
        choice = completion.choices[0]
        message = choice.message

        tool_calls: list[ToolCall] = []
        for index, tc in enumerate(message.tool_calls or ()):
            raw = tc.function.arguments
            try:
                args = json.loads(raw) if raw.strip() else {}
            except json.JSONDecodeError as e:
                raise ArgumentParseError(index, raw, original_error=e) from e
            tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, arguments=args))

        usage = None
        if completion.usage is not None:
            usage = Usage(
                prompt_tokens=completion.usage.prompt_tokens,
                completion_tokens=completion.usage.completion_tokens,
                total_tokens=completion.usage.total_tokens,
            )

        return LLMResponse(
            content=message.content or "",
            role=message.role,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason or "",
            usage=usage,
            model=completion.model or str(payload.get("model", "")),
            raw_response=resp.json(),
            latency_ms=latency,
        )

    async def response(self, payload: dict[str, Any]) -> LLMResponse:
        """Send a non-streaming request to the Responses API.

        Only the assistant text and token usage are extracted; the full body
        stays available as ``raw_response``.
        """
        body = _encode({**payload, "stream": False})

        start = time.monotonic()
        resp = await self._executor.execute(_RESPONSES_PATH, None, body)
        latency = (time.monotonic() - start) * 1000

        result = parse_responses_result(resp.content)
        return LLMResponse(
            content=extract_output_text(result.output),
            finish_reason=result.status or "",
            usage=extract_usage(result.usage),
            model=result.model or str(payload.get("model", "")),
            raw_response=resp.json(),
            latency_ms=latency,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def chat_stream(
        self, payload: dict[str, Any],
    ) -> AsyncGenerator[StreamEvent, None]:
        """Streaming chat completion.  Yields :data:`StreamEvent` values.

        Nothing is sent until the first event is requested.  The last event
        is always :class:`MessageEnd` unless an error is raised.  Closing the
        generator early releases the connection.
        """
        return self._stream_events(
            _CHAT_PATH, payload, parse_chunk, DeltaInterpreter(),
        )

    async def chat_text_stream(
        self, payload: dict[str, Any],
    ) -> AsyncGenerator[str, None]:
        """Like :meth:`chat_stream` but yields only the text fragments."""
        events = self.chat_stream(payload)
        try:
            async for event in events:
                if isinstance(event, TextDelta):
                    yield event.text
        finally:
            await events.aclose()

    def response_stream(
        self, payload: dict[str, Any],
    ) -> AsyncGenerator[StreamEvent, None]:
        """Streaming call against the Responses API."""
        return self._stream_events(
            _RESPONSES_PATH, payload, parse_response_event, ResponsesInterpreter(),
        )

    async def _stream_events(
        self,
        path: str,
        payload: dict[str, Any],
        parse: Callable[[str], Any],
        interpreter: DeltaInterpreter | ResponsesInterpreter,
    ) -> AsyncGenerator[StreamEvent, None]:
        body = _encode({**payload, "stream": True})
        decoder = FrameDecoder()

        async with self._executor.stream(path, _SSE_HEADERS, body) as resp:
            chunks = _aiter_body(resp)
            frames = aiter_frames(chunks, decoder)
            try:
                async for frame in frames:
                    for event in interpreter.feed(parse(frame)):
                        yield event
                    if interpreter.finished:
                        return
            finally:
                await frames.aclose()
                await chunks.aclose()

        if decoder.done:
            _logger.debug("%s stream hit [DONE] before a finish reason", path)
            for event in interpreter.finish():
                yield event
            return

        raise TransportError(
            "connection closed before the stream completed "
            f"({decoder.pending} undelimited byte(s) discarded)",
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()


def _encode(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")


async def _aiter_body(resp: httpx.Response) -> AsyncGenerator[bytes, None]:
    """Body chunks as they arrive, with httpx failures mapped to ours."""
    try:
        async for chunk in resp.aiter_bytes():
            yield chunk
    except httpx.HTTPError as e:
        raise TransportError(f"stream interrupted: {e}", original_error=e) from e
