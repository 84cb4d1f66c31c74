"""Client-side state reducer for possibility streams.

``reduce_event`` is a pure function: it never mutates the state it is
given and returns the same object when an event changes nothing. Feeding
the same events in the same order always yields equal state.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Mapping, Optional

from possibilities.generation.scoring import rank_candidates
from possibilities.streaming.events import (
    Confidence,
    Done,
    PossibilityComplete,
    PossibilityStart,
    StreamError,
    StreamEvent,
    Token,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamCandidate:
    id: str
    model: str
    provider: str
    content: str = ""
    confidence: Optional[float] = None
    temperature: Optional[float] = None
    system_instruction: Optional[str] = None
    finish_reason: Optional[str] = None
    is_streaming: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider": self.provider,
            "model": self.model,
            "content": self.content,
            "confidence": self.confidence,
            "temperature": self.temperature,
            "finishReason": self.finish_reason,
            "systemInstruction": self.system_instruction,
        }


@dataclass(frozen=True)
class StreamFailure:
    message: str
    candidate_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"id": self.candidate_id, "message": self.message}


@dataclass(frozen=True)
class StreamState:
    """Candidates in arrival order plus stream-level status.

    ``candidates`` must be treated as read-only; the reducer replaces it.
    """

    candidates: Mapping[str, StreamCandidate] = field(default_factory=dict)
    done: bool = False
    errors: tuple[StreamFailure, ...] = ()

    def get(self, candidate_id: str) -> Optional[StreamCandidate]:
        return self.candidates.get(candidate_id)

    def completed(self) -> list[StreamCandidate]:
        return [c for c in self.candidates.values() if not c.is_streaming]

    def ranked(self, include_streaming: bool = False) -> list[StreamCandidate]:
        """Candidates by confidence, unknown last, ties in arrival order."""
        pool = list(self.candidates.values()) if include_streaming else self.completed()
        return rank_candidates(pool)


def _with_candidate(state: StreamState, candidate: StreamCandidate) -> StreamState:
    return replace(state, candidates={**state.candidates, candidate.id: candidate})


def reduce_event(state: StreamState, event: StreamEvent) -> StreamState:
    """Apply one event to the state, returning the new state."""
    if isinstance(event, Done):
        return state if state.done else replace(state, done=True)

    if isinstance(event, StreamError):
        failure = StreamFailure(message=event.message, candidate_id=event.candidate_id)
        candidates = state.candidates
        if event.candidate_id is None:
            # Stream-level failure: unfinished candidates will never complete
            candidates = {k: v for k, v in candidates.items() if not v.is_streaming}
        elif event.candidate_id in candidates:
            candidates = {k: v for k, v in candidates.items() if k != event.candidate_id}
        return replace(state, candidates=candidates, errors=state.errors + (failure,))

    if isinstance(event, PossibilityStart):
        if event.candidate_id in state.candidates:
            logger.debug("Ignoring duplicate start for %s", event.candidate_id)
            return state
        return _with_candidate(state, StreamCandidate(
            id=event.candidate_id,
            model=event.model,
            provider=event.provider,
            temperature=event.temperature,
            system_instruction=event.system_instruction,
        ))

    current = state.candidates.get(event.candidate_id)
    if current is None:
        logger.debug("Ignoring %s for unknown candidate %s", event.type.value, event.candidate_id)
        return state

    if isinstance(event, PossibilityComplete):
        if not current.is_streaming:
            return state
        return _with_candidate(state, replace(
            current, is_streaming=False, finish_reason=event.finish_reason,
        ))

    if not current.is_streaming:
        logger.warning(
            "Ignoring %s after completion of %s", event.type.value, event.candidate_id
        )
        return state

    if isinstance(event, Token):
        return _with_candidate(state, replace(current, content=current.content + event.text))
    if isinstance(event, Confidence):
        return _with_candidate(state, replace(current, confidence=event.confidence))

    logger.warning("Ignoring unsupported event %r", event)
    return state


def reduce_events(events: Iterable[StreamEvent], state: Optional[StreamState] = None) -> StreamState:
    """Fold a sequence of events into a state."""
    state = state if state is not None else StreamState()
    for event in events:
        state = reduce_event(state, event)
    return state
