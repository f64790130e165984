"""Event interpreter for the Responses API (``/responses`` with streaming).

Each SSE payload is a type-tagged JSON event rather than a chat chunk; text
arrives as ``response.output_text.delta`` and the turn ends with
``response.completed``.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from open_completions.errors import StreamError
from open_completions.types import MessageEnd, StreamEvent, TextDelta, Usage

from .chunks import ResponseStreamEvent

_logger = logging.getLogger(__name__)

_TEXT_DELTA = "response.output_text.delta"
_COMPLETED = "response.completed"
_ERROR_TYPES = frozenset({"response.error", "response.failed", "error"})


def extract_usage(raw: Mapping[str, Any] | None) -> Usage | None:
    """Token usage from either Responses-style or chat-style keys.

    Returns ``None`` unless both input and output counts are present.
    """
    if not raw:
        return None
    prompt = raw.get("input_tokens", raw.get("prompt_tokens"))
    completion = raw.get("output_tokens", raw.get("completion_tokens"))
    if not isinstance(prompt, int) or not isinstance(completion, int):
        return None
    total = raw.get("total_tokens")
    if not isinstance(total, int):
        total = prompt + completion
    return Usage(
        prompt_tokens=prompt, completion_tokens=completion, total_tokens=total,
    )


def extract_output_text(output: Any) -> str:
    """Concatenated assistant text from a Responses ``output`` value.

    Handles a list of ``output_text`` blocks, ``message`` items wrapping
    such blocks in ``content``, and a bare object with ``text``.  Anything
    else contributes nothing.
    """
    if isinstance(output, Mapping):
        text = output.get("text")
        return text if isinstance(text, str) else ""
    if not isinstance(output, list):
        return ""

    parts: list[str] = []
    for item in output:
        if not isinstance(item, Mapping):
            continue
        kind = item.get("type")
        if kind in (None, "output_text") and isinstance(item.get("text"), str):
            parts.append(item["text"])
        elif kind == "message":
            parts.append(extract_output_text(item.get("content") or []))
    return "".join(parts)


class ResponsesInterpreter:
    """Stateful event -> public event converter for one Responses stream."""

    def __init__(self) -> None:
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, event: ResponseStreamEvent) -> list[StreamEvent]:
        if self._finished:
            return []

        if event.type == _TEXT_DELTA:
            return [TextDelta(event.delta)] if event.delta else []

        if event.type == _COMPLETED:
            self._finished = True
            events: list[StreamEvent] = []
            usage = extract_usage(event.usage)
            if usage is None and event.response:
                usage = extract_usage(event.response.get("usage"))
            if usage is not None:
                events.append(usage)
            events.append(MessageEnd())
            return events

        if event.type in _ERROR_TYPES:
            payload = event.error
            if payload is None and event.response:
                payload = event.response.get("error")
            raise StreamError(payload)

        _logger.debug("Ignoring Responses event %s", event.type)
        return []

    def finish(self) -> list[StreamEvent]:
        if self._finished:
            return []
        self._finished = True
        return [MessageEnd()]
