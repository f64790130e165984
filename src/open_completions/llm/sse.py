"""Incremental Server-Sent-Events frame decoder.

Bytes arrive in arbitrary slices; frames are delimited by a blank line
(``"\\n\\n"``).  Only ``data: `` frames carry payloads, and the payload
``[DONE]`` ends the sequence.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, AsyncIterable

from open_completions.errors import DecodeError

_logger = logging.getLogger(__name__)

_DELIMITER = b"\n\n"
_DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class FrameDecoder:
    """Turn byte chunks into ``data:`` payload strings.

    The decoder owns its buffer exclusively.  Bytes are only appended at the
    tail and only removed from the head, one complete frame at a time, so
    where the network happened to split the stream never changes the frames
    that come out.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._scan_from = 0
        self._done = False

    @property
    def done(self) -> bool:
        """True once the ``[DONE]`` sentinel has been seen."""
        return self._done

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet part of a complete frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[str]:
        """Append *data* and return every payload it completes."""
        if self._done:
            return []
        self._buffer.extend(data)

        payloads: list[str] = []
        while True:
            pos = self._buffer.find(_DELIMITER, self._scan_from)
            if pos < 0:
                # The delimiter may straddle this chunk and the next one
                self._scan_from = max(len(self._buffer) - 1, 0)
                break

            end = pos + len(_DELIMITER)
            raw = bytes(self._buffer[:end])
            del self._buffer[:end]
            self._scan_from = 0

            payload = _frame_payload(raw)
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                self._done = True
                self._buffer.clear()
                break
            payloads.append(payload)
        return payloads


def _frame_payload(raw: bytes) -> str | None:
    """Payload of a ``data:`` frame, or ``None`` for any other frame."""
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"SSE frame is not valid UTF-8: {e}", original_error=e) from e
    if not text.startswith(_DATA_PREFIX):
        return None
    return text[len(_DATA_PREFIX):].strip()


async def aiter_frames(
    chunks: AsyncIterable[bytes],
    decoder: FrameDecoder | None = None,
) -> AsyncGenerator[str, None]:
    """Lazily decode *chunks* into payloads.

    Ends at ``[DONE]`` without reading further, or when *chunks* is
    exhausted.  Undelimited trailing bytes at the end are dropped.  Pass a
    *decoder* to inspect afterwards whether the sentinel was seen.
    """
    if decoder is None:
        decoder = FrameDecoder()
    async for chunk in chunks:
        for payload in decoder.feed(chunk):
            yield payload
        if decoder.done:
            return
    if decoder.pending:
        _logger.debug(
            "Discarding %d undelimited trailing byte(s)", decoder.pending,
        )
