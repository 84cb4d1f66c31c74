"""Possibility streaming: typed events, SSE codec, server emitter,
client reducer and reader.
"""

from possibilities.streaming.events import (
    Confidence,
    Done,
    EventType,
    PossibilityComplete,
    PossibilityStart,
    StreamError,
    StreamEvent,
    Token,
    event_from_wire,
)
from possibilities.streaming.sse import DONE_SENTINEL, SSEDecoder, encode_done, encode_sse
from possibilities.streaming.reducer import (
    StreamCandidate,
    StreamFailure,
    StreamState,
    reduce_event,
    reduce_events,
)
from possibilities.streaming.emitter import PossibilityStreamer
from possibilities.streaming.reader import PossibilitiesClient, iter_events, read_possibilities

__all__ = [
    # Events
    "EventType",
    "PossibilityStart",
    "Token",
    "Confidence",
    "PossibilityComplete",
    "StreamError",
    "Done",
    "StreamEvent",
    "event_from_wire",
    # SSE
    "DONE_SENTINEL",
    "SSEDecoder",
    "encode_sse",
    "encode_done",
    # Reducer
    "StreamCandidate",
    "StreamFailure",
    "StreamState",
    "reduce_event",
    "reduce_events",
    # Emitter / reader
    "PossibilityStreamer",
    "PossibilitiesClient",
    "iter_events",
    "read_possibilities",
]
