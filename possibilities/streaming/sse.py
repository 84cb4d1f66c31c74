"""Server-Sent Events codec for stream events.

Each event is one ``data: <json>`` line followed by a blank line. The
transport terminator ``data: [DONE]`` is decoded as a ``Done`` event.
"""

import codecs
import json
import logging
from typing import Union

from possibilities.model_providers.exceptions import StreamParseError
from possibilities.streaming.events import Done, StreamEvent, event_from_wire

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DATA_PREFIX = "data:"


def encode_sse(event: StreamEvent) -> str:
    return f"data: {json.dumps(event.to_wire(), separators=(',', ':'))}\n\n"


def encode_done() -> str:
    return f"data: {DONE_SENTINEL}\n\n"


class SSEDecoder:
    """Incremental decoder: feed raw chunks, get complete events back.

    Chunk boundaries may fall anywhere, including inside a line or inside a
    multi-byte UTF-8 sequence. Comment lines (``:``), other SSE fields and
    blank lines are ignored; a malformed payload is logged and skipped.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.malformed_count = 0

    def feed(self, chunk: Union[bytes, str]) -> list[StreamEvent]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        events = []
        *lines, self._buffer = self._buffer.split("\n")
        for line in lines:
            event = self._parse_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[StreamEvent]:
        """Decode whatever remains once the byte stream has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        line, self._buffer = self._buffer, ""
        event = self._parse_line(line)
        return [event] if event is not None else []

    def _parse_line(self, line: str):
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None
        payload = line[len(DATA_PREFIX):].strip()
        if not payload:
            return None
        if payload == DONE_SENTINEL:
            return Done()
        try:
            return event_from_wire(json.loads(payload))
        except (ValueError, TypeError) as exc:
            self.malformed_count += 1
            logger.warning("%s", StreamParseError(line, str(exc)))
            return None
