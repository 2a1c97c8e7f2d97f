"""
Server-Sent Events framing.

SSEDecoder turns an arbitrarily fragmented byte stream into RawEvents. It
keeps only the trailing partial line and the data lines of the event being
assembled, so memory is bounded by the longest single event.
"""

import logging
from typing import List, Optional

from llm_stream.models.response import RawEvent
from llm_stream.utils.exceptions import DecodeError

logger = logging.getLogger(__name__)

# Constants
SSE_DONE_SIGNAL = "[DONE]"
_LF = 0x0A


class SSEDecoder:
    """Incremental SSE parser owned by a single stream."""

    def __init__(self):
        self._buffer = bytearray()
        self._data_lines: List[str] = []
        self._event: Optional[str] = None

    def feed(self, chunk: bytes) -> List[RawEvent]:
        """Append a chunk and return every event completed by it, in order."""
        if not chunk:
            return []
        self._buffer.extend(chunk)

        events: List[RawEvent] = []
        start = 0
        while True:
            end = self._buffer.find(_LF, start)
            if end == -1:
                break
            event = self._process_line(self._buffer[start:end])
            if event is not None:
                events.append(event)
            start = end + 1

        # Keep the trailing partial line for the next chunk
        if start:
            del self._buffer[:start]
        return events

    def flush(self) -> List[RawEvent]:
        """Handle end of body: process a trailing unterminated line and
        dispatch the pending event if it has data."""
        events: List[RawEvent] = []
        if self._buffer:
            event = self._process_line(bytes(self._buffer))
            self._buffer.clear()
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    @property
    def pending_bytes(self) -> int:
        """Bytes buffered for a line that has not been terminated yet."""
        return len(self._buffer)

    def _process_line(self, raw: bytes | bytearray) -> Optional[RawEvent]:
        try:
            line = _decode_line(raw)
        except DecodeError as e:
            logger.debug(f"Ignoring undecodable SSE line: {e}")
            return None

        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data_lines.append(value)
        elif field == "event":
            self._event = value
        elif field in ("id", "retry"):
            pass
        else:
            logger.debug(f"Ignoring malformed SSE line: {line[:80]!r}")
        return None

    def _dispatch(self) -> Optional[RawEvent]:
        if not self._data_lines:
            self._event = None
            return None
        event = RawEvent(data="\n".join(self._data_lines), event=self._event or None)
        self._data_lines = []
        self._event = None
        return event


def _decode_line(raw: bytes | bytearray) -> str:
    """Decode one line as UTF-8, dropping a trailing carriage return."""
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"invalid UTF-8 at byte {e.start}") from e
