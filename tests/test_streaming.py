"""Tests for stream events, the SSE codec, the emitter and the client reducer."""

import asyncio
import json

import pytest

from conftest import FakeProvider, fake_model
from possibilities.generation.cancellation import CancellationToken
from possibilities.generation.config import OrchestratorConfig
from possibilities.generation.orchestrator import GenerationOrchestrator
from possibilities.generation.permutations import Permutation, SystemInstruction
from possibilities.model_providers.config import Message, ModelCatalog, ProviderResponse
from possibilities.model_providers.credentials import StaticCredentialSource
from possibilities.model_providers.registry import ProviderRegistry
from possibilities.streaming import (
    Confidence,
    Done,
    PossibilityComplete,
    PossibilityStart,
    PossibilityStreamer,
    SSEDecoder,
    StreamError,
    StreamState,
    Token,
    encode_done,
    encode_sse,
    event_from_wire,
    iter_events,
    read_possibilities,
    reduce_event,
    reduce_events,
)

MESSAGES = [Message.user("Say hi")]

HAPPY_EVENTS = [
    PossibilityStart(candidate_id="c1", model="gpt-4o-mini", provider="openai", temperature=0.7),
    Token(candidate_id="c1", text="Hi"),
    Token(candidate_id="c1", text=" there"),
    Confidence(candidate_id="c1", confidence=0.7),
    PossibilityComplete(candidate_id="c1", finish_reason="stop"),
    Done(),
]


async def _aiter(parts):
    for part in parts:
        yield part


async def _collect(stream):
    return [event async for event in stream]


def _streamer(*providers, models=None, **config):
    catalog = ModelCatalog(models or [
        fake_model("alpha-1", "alpha", supports_confidence_score=True),
        fake_model("alpha-think", "alpha", is_reasoning_model=True),
        fake_model("beta-1", "beta"),
    ])
    registry = ProviderRegistry(StaticCredentialSource())
    for provider in providers:
        registry.register(provider)
    config.setdefault("provider_timeout_seconds", 5.0)
    return PossibilityStreamer(GenerationOrchestrator(catalog, registry, OrchestratorConfig(**config)))


def _perm(pid, model="alpha-1", provider="alpha", temperature=0.7, **kwargs):
    return Permutation(id=pid, provider=provider, model=model, temperature=temperature, **kwargs)


def _by_candidate(events, candidate_id):
    return [e for e in events if getattr(e, "candidate_id", None) == candidate_id]


# ═══════════════════════════════════════════════════════════════════════
# Test Wire Format
# ═══════════════════════════════════════════════════════════════════════


class TestWireFormat:
    """Test event JSON shapes."""

    def test_start_wire(self):
        event = PossibilityStart(
            candidate_id="c1", model="m", provider="p", temperature=0.9, system_instruction="Poet"
        )
        assert event.to_wire() == {
            "type": "possibility_start",
            "data": {"id": "c1", "provider": "p", "model": "m", "temperature": 0.9,
                     "systemInstruction": "Poet"},
        }

    def test_complete_wire(self):
        wire = PossibilityComplete(candidate_id="c1", finish_reason="length").to_wire()
        assert wire == {"type": "possibility_complete", "data": {"id": "c1", "finishReason": "length"}}

    def test_error_wire_without_candidate(self):
        assert StreamError(message="boom").to_wire() == {"type": "error", "data": {"message": "boom"}}

    def test_encode_sse(self):
        line = encode_sse(Token(candidate_id="c1", text="Hi"))
        assert line == 'data: {"type":"token","data":{"id":"c1","token":"Hi"}}\n\n'

    def test_encode_done(self):
        assert encode_done() == "data: [DONE]\n\n"

    @pytest.mark.parametrize("event", HAPPY_EVENTS + [StreamError(message="x", candidate_id="c1")])
    def test_from_wire_inverts_to_wire(self, event):
        assert event_from_wire(event.to_wire()) == event

    def test_probability_alias(self):
        event = event_from_wire({"type": "probability", "data": {"id": "c1", "probability": 0.42}})
        assert event == Confidence(candidate_id="c1", confidence=0.42)

    @pytest.mark.parametrize("payload", [
        [],
        {"type": "nope"},
        {"type": [], "data": {}},
        {"type": {"name": "token"}, "data": {}},
        {"data": {"id": "c1"}},
        {"type": "token"},
        {"type": "token", "data": {"id": 5, "token": "x"}},
        {"type": "confidence", "data": {"id": "c1", "confidence": "high"}},
        {"type": "possibility_start", "data": {"id": "c1"}},
    ])
    def test_from_wire_rejects(self, payload):
        with pytest.raises(ValueError):
            event_from_wire(payload)


# ═══════════════════════════════════════════════════════════════════════
# Test SSE Decoder
# ═══════════════════════════════════════════════════════════════════════


class TestSSEDecoder:
    """Test incremental decoding across arbitrary chunk boundaries."""

    def _body(self):
        return "".join(encode_sse(e) for e in HAPPY_EVENTS[:-1]) + encode_done()

    def test_whole_body(self):
        decoder = SSEDecoder()
        assert decoder.feed(self._body().encode()) == HAPPY_EVENTS

    @pytest.mark.parametrize("size", [1, 2, 3, 7, 16, 64])
    def test_any_chunking(self, size):
        body = self._body().encode()
        decoder = SSEDecoder()
        events = []
        for i in range(0, len(body), size):
            events.extend(decoder.feed(body[i:i + size]))
        events.extend(decoder.flush())
        assert events == HAPPY_EVENTS

    def test_split_multibyte_character(self):
        line = 'data: {"type":"token","data":{"id":"c1","token":"héllo 🌍"}}\n\n'.encode("utf-8")
        decoder = SSEDecoder()
        events = []
        for byte in line:
            events.extend(decoder.feed(bytes([byte])))
        assert events == [Token(candidate_id="c1", text="héllo 🌍")]

    def test_crlf_line_endings(self):
        body = self._body().replace("\n", "\r\n")
        assert SSEDecoder().feed(body) == HAPPY_EVENTS

    def test_comments_and_other_fields_ignored(self):
        body = ": keep-alive\nevent: token\nid: 3\n\n" + encode_sse(Done())
        assert SSEDecoder().feed(body) == [Done()]

    def test_malformed_line_skipped(self):
        decoder = SSEDecoder()
        body = (
            "data: {not json\n\n"
            + 'data: {"type":"mystery"}\n\n'
            + 'data: {"type": [], "data": {}}\n\n'
            + 'data: {"type": {"k": 1}, "data": {}}\n\n'
            + encode_sse(Done())
        )
        assert decoder.feed(body) == [Done()]
        assert decoder.malformed_count == 4

    @pytest.mark.asyncio
    async def test_unhashable_type_does_not_end_stream(self):
        body = (
            encode_sse(PossibilityStart(candidate_id="c1", model="m", provider="p", temperature=0.7))
            + 'data: {"type": ["token"], "data": {"id": "c1"}}\n\n'
            + encode_sse(Token(candidate_id="c1", text="ok"))
            + encode_done()
        )
        events = [e async for e in iter_events(_aiter([body.encode()]))]
        assert events[-2] == Token(candidate_id="c1", text="ok")
        assert events[-1] == Done()

    def test_flush_emits_unterminated_line(self):
        decoder = SSEDecoder()
        assert decoder.feed("data: [DONE]") == []
        assert decoder.flush() == [Done()]


# ═══════════════════════════════════════════════════════════════════════
# Test Reducer
# ═══════════════════════════════════════════════════════════════════════


class TestReducer:
    """Test client-side state accumulation."""

    def test_happy_path(self):
        state = reduce_events(HAPPY_EVENTS)
        candidate = state.get("c1")
        assert candidate.content == "Hi there"
        assert candidate.confidence == 0.7
        assert candidate.is_streaming is False
        assert candidate.finish_reason == "stop"
        assert state.done is True

    def test_deterministic(self):
        assert reduce_events(HAPPY_EVENTS) == reduce_events(HAPPY_EVENTS)

    def test_does_not_mutate_input(self):
        start = reduce_event(StreamState(), HAPPY_EVENTS[0])
        after = reduce_event(start, HAPPY_EVENTS[1])
        assert start.get("c1").content == ""
        assert after.get("c1").content == "Hi"

    def test_streaming_until_complete(self):
        state = reduce_events(HAPPY_EVENTS[:3])
        assert state.get("c1").is_streaming is True
        assert state.completed() == []

    def test_unknown_candidate_ignored(self):
        state = StreamState()
        assert reduce_event(state, Token(candidate_id="ghost", text="boo")) is state

    def test_duplicate_start_ignored(self):
        state = reduce_events(HAPPY_EVENTS[:2])
        assert reduce_event(state, HAPPY_EVENTS[0]) is state

    def test_tokens_after_complete_ignored(self):
        state = reduce_events(HAPPY_EVENTS[:5])
        assert reduce_event(state, Token(candidate_id="c1", text="!")) is state
        assert reduce_event(state, Confidence(candidate_id="c1", confidence=0.1)) is state
        assert reduce_event(state, HAPPY_EVENTS[4]) is state

    def test_error_removes_candidate(self):
        state = reduce_events(HAPPY_EVENTS[:2])
        state = reduce_event(state, StreamError(message="rate limited", candidate_id="c1"))
        assert state.get("c1") is None
        assert state.errors[0].message == "rate limited"

    def test_error_for_unstarted_candidate_recorded(self):
        state = reduce_event(StreamState(), StreamError(message="unknown model", candidate_id="c9"))
        assert state.candidates == {}
        assert state.errors[0].candidate_id == "c9"

    def test_cancellation_drops_unfinished_candidates(self):
        events = HAPPY_EVENTS[:5] + [
            PossibilityStart(candidate_id="c2", model="m", provider="p", temperature=0.9),
            Token(candidate_id="c2", text="half"),
            StreamError(message="cancelled: deadline exceeded"),
        ]
        state = reduce_events(events)
        assert list(state.candidates) == ["c1"]
        assert state.get("c1").content == "Hi there"
        assert state.errors[-1].candidate_id is None

    def test_ranked(self):
        events = [
            PossibilityStart(candidate_id="a", model="m", provider="p"),
            PossibilityStart(candidate_id="b", model="m", provider="p"),
            PossibilityStart(candidate_id="c", model="m", provider="p"),
            PossibilityStart(candidate_id="d", model="m", provider="p"),
            Confidence(candidate_id="a", confidence=0.3),
            Confidence(candidate_id="c", confidence=0.6),
            PossibilityComplete(candidate_id="a"),
            PossibilityComplete(candidate_id="b"),
            PossibilityComplete(candidate_id="c"),
        ]
        state = reduce_events(events)
        assert [c.id for c in state.ranked()] == ["c", "a", "b"]
        assert [c.id for c in state.ranked(include_streaming=True)] == ["c", "a", "b", "d"]

    def test_arrival_order_preserved(self):
        events = [
            PossibilityStart(candidate_id=cid, model="m", provider="p") for cid in ("z", "a", "m")
        ]
        assert list(reduce_events(events).candidates) == ["z", "a", "m"]


# ═══════════════════════════════════════════════════════════════════════
# Test Emitter
# ═══════════════════════════════════════════════════════════════════════


class TestEmitter:
    """Test server-side event emission."""

    @pytest.mark.asyncio
    async def test_event_order_per_candidate(self):
        alpha = FakeProvider(
            "alpha", chunks=["Hi", " there"],
            default=ProviderResponse(content="Hi there", confidence=0.7),
        )
        streamer = _streamer(alpha)
        events = await _collect(streamer.stream(MESSAGES, [_perm("p1")]))
        assert events == [
            PossibilityStart(candidate_id="p1", model="alpha-1", provider="alpha", temperature=0.7),
            Token(candidate_id="p1", text="Hi"),
            Token(candidate_id="p1", text=" there"),
            Confidence(candidate_id="p1", confidence=0.7),
            PossibilityComplete(candidate_id="p1", finish_reason="stop"),
            Done(),
        ]

    @pytest.mark.asyncio
    async def test_no_confidence_event_when_unknown(self):
        beta = FakeProvider("beta", default=ProviderResponse(content="b", confidence=None))
        streamer = _streamer(beta)
        events = await _collect(streamer.stream(MESSAGES, [_perm("p1", model="beta-1", provider="beta")]))
        assert not any(isinstance(e, Confidence) for e in events)
        assert isinstance(events[-2], PossibilityComplete)

    @pytest.mark.asyncio
    async def test_many_candidates_single_done(self):
        alpha = FakeProvider("alpha", chunks=["a", "b"], delay=0.01)
        beta = FakeProvider("beta", chunks=["c"])
        streamer = _streamer(alpha, beta)
        perms = [_perm("p1"), _perm("p2", temperature=0.9), _perm("p3", model="beta-1", provider="beta")]
        events = await _collect(streamer.stream(MESSAGES, perms))
        assert events[-1] == Done()
        assert sum(isinstance(e, Done) for e in events) == 1
        for pid in ("p1", "p2", "p3"):
            own = _by_candidate(events, pid)
            assert isinstance(own[0], PossibilityStart)
            assert isinstance(own[-1], PossibilityComplete)

    @pytest.mark.asyncio
    async def test_unknown_model_reports_error_without_start(self):
        streamer = _streamer(FakeProvider("alpha"))
        events = await _collect(streamer.stream(MESSAGES, [_perm("p1", model="nope-9", provider="unknown")]))
        assert len(events) == 2
        assert isinstance(events[0], StreamError)
        assert events[0].candidate_id == "p1"
        assert "nope-9" in events[0].message
        assert events[1] == Done()

    @pytest.mark.asyncio
    async def test_provider_error_after_start(self):
        alpha = FakeProvider("alpha", chunks=["partial"], default=RuntimeError("rate limited"))
        beta = FakeProvider("beta")
        streamer = _streamer(alpha, beta)
        events = await _collect(streamer.stream(
            MESSAGES, [_perm("p1"), _perm("p2", model="beta-1", provider="beta")]
        ))
        own = _by_candidate(events, "p1")
        assert isinstance(own[0], PossibilityStart)
        assert isinstance(own[-1], StreamError)
        assert "rate limited" in own[-1].message
        assert isinstance(_by_candidate(events, "p2")[-1], PossibilityComplete)

    @pytest.mark.asyncio
    async def test_timeout_becomes_error(self):
        alpha = FakeProvider("alpha", chunks=["slow"], delay=1.0)
        streamer = _streamer(alpha, provider_timeout_seconds=0.05)
        events = await _collect(streamer.stream(MESSAGES, [_perm("p1")]))
        assert isinstance(events[-2], StreamError)
        assert "timed out" in events[-2].message

    @pytest.mark.asyncio
    async def test_reasoning_model_reports_no_temperature(self):
        alpha = FakeProvider("alpha")
        streamer = _streamer(alpha)
        events = await _collect(streamer.stream(MESSAGES, [_perm("p1", model="alpha-think")]))
        assert events[0].temperature is None
        assert alpha.calls[0]["options"].max_tokens == 1500

    @pytest.mark.asyncio
    async def test_system_instruction_prepended(self):
        alpha = FakeProvider("alpha")
        streamer = _streamer(alpha)
        instruction = SystemInstruction(id="poet", name="Poet", content="Answer in verse.")
        events = await _collect(streamer.stream(
            MESSAGES, [_perm("p1", system_instruction=instruction, system_prompt="Be kind.")],
            max_tokens=42,
        ))
        assert events[0].system_instruction == "Poet"
        sent = alpha.calls[0]["messages"]
        assert sent[0].content == "Be kind.\n\nAnswer in verse."
        assert alpha.calls[0]["options"].max_tokens == 42

    @pytest.mark.asyncio
    async def test_cancellation_ends_stream(self):
        alpha = FakeProvider("alpha", chunks=["never"], delay=5.0)
        streamer = _streamer(alpha)
        token = CancellationToken()
        events = []
        async for event in streamer.stream(MESSAGES, [_perm("p1"), _perm("p2", temperature=0.9)],
                                           cancel_token=token):
            events.append(event)
            if isinstance(event, PossibilityStart):
                token.cancel("client disconnected")
        assert events[-1] == Done()
        assert events[-2] == StreamError(message="cancelled: client disconnected")
        assert not any(isinstance(e, (Token, PossibilityComplete)) for e in events)

    @pytest.mark.asyncio
    async def test_deadline_reported_before_done(self):
        streamer = _streamer(FakeProvider("alpha", delay=5.0))
        token = CancellationToken(timeout=0.05)
        events = await _collect(streamer.stream(MESSAGES, [_perm("p1")], cancel_token=token))
        assert events[-2:] == [StreamError(message="cancelled: deadline exceeded"), Done()]

    @pytest.mark.asyncio
    async def test_uncancelled_stream_has_no_stream_level_error(self):
        streamer = _streamer(FakeProvider("alpha"))
        events = await _collect(streamer.stream(MESSAGES, [_perm("p1")], cancel_token=CancellationToken()))
        assert not any(isinstance(e, StreamError) for e in events)

    @pytest.mark.asyncio
    async def test_no_permutations(self):
        streamer = _streamer()
        assert await _collect(streamer.stream(MESSAGES, [])) == [Done()]


# ═══════════════════════════════════════════════════════════════════════
# Test Reader
# ═══════════════════════════════════════════════════════════════════════


class TestReader:
    """Test byte chunks to events to state."""

    def _body(self):
        return ("".join(encode_sse(e) for e in HAPPY_EVENTS[:-1]) + encode_done()).encode()

    @pytest.mark.asyncio
    async def test_stops_at_done_marker(self):
        body = self._body() + encode_sse(Token(candidate_id="c1", text="late")).encode()
        events = await _collect(iter_events(_aiter([body])))
        assert events == HAPPY_EVENTS

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_reading(self):
        token = CancellationToken()
        token.cancel()
        events = await _collect(iter_events(_aiter([self._body()]), token))
        assert events == []

    @pytest.mark.asyncio
    async def test_read_possibilities(self):
        body = self._body()
        chunks = [body[i:i + 5] for i in range(0, len(body), 5)]
        state = await read_possibilities(_aiter(chunks))
        assert state.get("c1").content == "Hi there"
        assert state.get("c1").confidence == 0.7
        assert state.done is True

    @pytest.mark.asyncio
    async def test_emitter_to_state(self):
        alpha = FakeProvider("alpha", default=ProviderResponse(content="a", confidence=0.3))
        beta = FakeProvider("beta", default=ProviderResponse(content="b", confidence=0.6))
        streamer = _streamer(alpha, beta)
        perms = [_perm("p1"), _perm("p2", model="beta-1", provider="beta")]
        body = "".join([encode_sse(e) async for e in streamer.stream(MESSAGES, perms)])
        body += encode_done()
        state = await read_possibilities(_aiter([body.encode()]))
        assert [c.confidence for c in state.ranked()] == [0.6, 0.3]
        assert json.loads(json.dumps(state.ranked()[0].to_dict()))["content"] == "b"
