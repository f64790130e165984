"""Turn streamed chat-completion chunks into ordered public events.

OpenAI-compatible providers send tool calls as incremental fragments: each
fragment has an ``index``, the call ``id`` and ``function.name`` usually on
the first fragment only, and ``function.arguments`` pieces that must be
concatenated.  :class:`DeltaInterpreter` reconstructs those calls and emits
lifecycle events as the pieces arrive.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from open_completions.errors import ArgumentParseError
from open_completions.types import (
    MessageEnd,
    StreamEvent,
    TextDelta,
    ToolCallArgumentsDelta,
    ToolCallComplete,
    ToolCallStart,
    Usage,
)

from .chunks import ChatCompletionChunk, FinishReason, ToolCallDelta

_logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "unknown_function"


def placeholder_id(index: int) -> str:
    """Synthetic id for a tool call whose id never arrived."""
    return f"call_{index}"


@dataclass
class _ToolCallAccumulator:
    """Per-index reconstruction state.

    ``id`` and ``name`` may be refreshed by later fragments, but each one
    triggers a start event only the first time it is seen.  ``arguments``
    only ever grows.
    """

    id: str | None = None
    name: str | None = None
    arguments: str = ""
    started: bool = False
    named_start: bool = False


class DeltaInterpreter:
    """Stateful chunk -> event converter for one streamed response.

    Not reusable: create one per stream.  After ``MessageEnd`` has been
    produced every further :meth:`feed` returns no events.
    """

    def __init__(self) -> None:
        # dict preserves insertion order == order indices were first seen
        self._calls: dict[int, _ToolCallAccumulator] = {}
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def open_tool_calls(self) -> int:
        return len(self._calls)

    def feed(self, chunk: ChatCompletionChunk) -> list[StreamEvent]:
        """Process one chunk and return the events it produces, in order."""
        if self._finished:
            return []

        events: list[StreamEvent] = []
        # With n > 1 each choice may arrive in its own chunk; only index 0 counts
        choice = next((c for c in chunk.choices if c.index == 0), None)

        if choice is not None:
            delta = choice.delta
            if delta.content:
                events.append(TextDelta(delta.content))
            for fragment in delta.tool_calls or ():
                events.extend(self._feed_tool_call(fragment))

        if chunk.usage is not None:
            events.append(Usage(
                prompt_tokens=chunk.usage.prompt_tokens,
                completion_tokens=chunk.usage.completion_tokens,
                total_tokens=chunk.usage.total_tokens,
            ))

        if choice is not None and choice.finish_reason:
            if choice.finish_reason == FinishReason.TOOL_CALLS.value:
                events.extend(self._complete_tool_calls())
            else:
                events.extend(self._end(choice.finish_reason))
        return events

    def finish(self) -> list[StreamEvent]:
        """End the stream without a terminal reason (e.g. on ``[DONE]``)."""
        if self._finished:
            return []
        return self._end("end of stream")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _feed_tool_call(self, fragment: ToolCallDelta) -> list[StreamEvent]:
        index = fragment.index
        acc = self._calls.get(index)
        if acc is None:
            acc = self._calls[index] = _ToolCallAccumulator()

        func = fragment.function
        new_id = fragment.id or None
        new_name = (func.name or None) if func is not None else None
        arguments = func.arguments if func is not None else None

        first_id = new_id is not None and acc.id is None
        first_name = new_name is not None and acc.name is None
        if new_id is not None:
            acc.id = new_id
        if new_name is not None:
            acc.name = new_name

        events: list[StreamEvent] = []
        if first_id:
            events.append(ToolCallStart(index, acc.id, acc.name))
            acc.started = True
            acc.named_start = acc.name is not None
        if first_name and not acc.named_start:
            events.append(ToolCallStart(index, acc.id, acc.name))
            acc.started = True
            acc.named_start = True

        if arguments:
            acc.arguments += arguments
            if not acc.started:
                # Arguments before any id or name: announce the index first
                events.append(ToolCallStart(index, None, None))
                acc.started = True
            events.append(ToolCallArgumentsDelta(index, arguments))
        return events

    def _complete_tool_calls(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for index, acc in self._calls.items():
            raw = acc.arguments
            try:
                arguments = json.loads(raw) if raw.strip() else {}
            except json.JSONDecodeError as e:
                raise ArgumentParseError(index, raw, original_error=e) from e
            if not acc.started:
                # Only empty fragments were seen for this index
                events.append(ToolCallStart(index, None, None))
                acc.started = True
            events.append(ToolCallComplete(
                index=index,
                id=acc.id or placeholder_id(index),
                name=acc.name or PLACEHOLDER_NAME,
                arguments=arguments,
            ))
        self._calls.clear()
        self._finished = True
        events.append(MessageEnd())
        return events

    def _end(self, reason: str) -> list[StreamEvent]:
        if self._calls:
            _logger.warning(
                "Stream ended (%s) with %d incomplete tool call(s) at "
                "index(es) %s; dropping them",
                reason, len(self._calls), list(self._calls),
            )
            self._calls.clear()
        self._finished = True
        return [MessageEnd()]
