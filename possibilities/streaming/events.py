"""Typed stream events and their wire representation.

Wire form of every event is ``{"type": <name>, "data": {...}}`` with the
candidate id under ``data.id``. Per candidate the order is: one
``possibility_start``, any number of ``token``, at most one
``confidence``, then exactly one ``possibility_complete`` or ``error``.
A single ``done`` ends the stream.
"""

import enum
import numbers
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Union


class EventType(str, enum.Enum):
    POSSIBILITY_START = "possibility_start"
    TOKEN = "token"
    CONFIDENCE = "confidence"
    POSSIBILITY_COMPLETE = "possibility_complete"
    ERROR = "error"
    DONE = "done"


# Older clients and servers call the confidence event "probability"
EVENT_ALIASES = {"probability": EventType.CONFIDENCE}


@dataclass(frozen=True)
class PossibilityStart:
    candidate_id: str
    model: str
    provider: str
    temperature: Optional[float] = None
    system_instruction: Optional[str] = None

    type: ClassVar[EventType] = EventType.POSSIBILITY_START

    def to_wire(self) -> dict:
        data = {
            "id": self.candidate_id,
            "provider": self.provider,
            "model": self.model,
            "temperature": self.temperature,
        }
        if self.system_instruction is not None:
            data["systemInstruction"] = self.system_instruction
        return {"type": self.type.value, "data": data}


@dataclass(frozen=True)
class Token:
    candidate_id: str
    text: str

    type: ClassVar[EventType] = EventType.TOKEN

    def to_wire(self) -> dict:
        return {"type": self.type.value, "data": {"id": self.candidate_id, "token": self.text}}


@dataclass(frozen=True)
class Confidence:
    candidate_id: str
    confidence: Optional[float]

    type: ClassVar[EventType] = EventType.CONFIDENCE

    def to_wire(self) -> dict:
        return {
            "type": self.type.value,
            "data": {"id": self.candidate_id, "confidence": self.confidence},
        }


@dataclass(frozen=True)
class PossibilityComplete:
    candidate_id: str
    finish_reason: Optional[str] = None

    type: ClassVar[EventType] = EventType.POSSIBILITY_COMPLETE

    def to_wire(self) -> dict:
        data = {"id": self.candidate_id}
        if self.finish_reason is not None:
            data["finishReason"] = self.finish_reason
        return {"type": self.type.value, "data": data}


@dataclass(frozen=True)
class StreamError:
    """A candidate failed, or (without ``candidate_id``) the whole stream did."""

    message: str
    candidate_id: Optional[str] = None

    type: ClassVar[EventType] = EventType.ERROR

    def to_wire(self) -> dict:
        data = {"message": self.message}
        if self.candidate_id is not None:
            data["id"] = self.candidate_id
        return {"type": self.type.value, "data": data}


@dataclass(frozen=True)
class Done:
    type: ClassVar[EventType] = EventType.DONE

    def to_wire(self) -> dict:
        return {"type": self.type.value}


StreamEvent = Union[PossibilityStart, Token, Confidence, PossibilityComplete, StreamError, Done]


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value


def _optional_number(value: Any, key: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValueError(f"'{key}' must be a number or null")
    return float(value)


def event_from_wire(payload: Any) -> StreamEvent:
    """Build a typed event from its decoded JSON form.

    Raises:
        ValueError: Unknown type or missing/ill-typed fields.
    """
    if not isinstance(payload, dict):
        raise ValueError("event must be a JSON object")
    raw_type = payload.get("type")
    if not isinstance(raw_type, str):
        raise ValueError(f"unknown event type {raw_type!r}")
    try:
        event_type = EVENT_ALIASES.get(raw_type) or EventType(raw_type)
    except ValueError:
        raise ValueError(f"unknown event type {raw_type!r}") from None

    if event_type == EventType.DONE:
        return Done()

    data = payload.get("data")
    if not isinstance(data, dict):
        raise ValueError("'data' must be an object")

    if event_type == EventType.ERROR:
        candidate_id = data.get("id")
        return StreamError(
            message=str(data.get("message") or "Unknown error"),
            candidate_id=candidate_id if isinstance(candidate_id, str) else None,
        )

    candidate_id = _require_str(data, "id")
    if event_type == EventType.POSSIBILITY_START:
        instruction = data.get("systemInstruction")
        return PossibilityStart(
            candidate_id=candidate_id,
            model=_require_str(data, "model"),
            provider=_require_str(data, "provider"),
            temperature=_optional_number(data.get("temperature"), "temperature"),
            system_instruction=instruction if isinstance(instruction, str) else None,
        )
    if event_type == EventType.TOKEN:
        return Token(candidate_id=candidate_id, text=_require_str(data, "token"))
    if event_type == EventType.CONFIDENCE:
        key = "confidence" if "confidence" in data else "probability"
        return Confidence(
            candidate_id=candidate_id,
            confidence=_optional_number(data.get(key), key),
        )
    finish_reason = data.get("finishReason")
    return PossibilityComplete(
        candidate_id=candidate_id,
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
    )
