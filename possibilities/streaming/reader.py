"""Client-side stream reading: byte chunks to events to state.

``PossibilitiesClient`` talks to the HTTP surface with aiohttp and yields
typed events as the SSE body arrives.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterable, AsyncIterator, Optional, Union

import aiohttp

from possibilities.generation.cancellation import CancellationToken
from possibilities.streaming.events import Done, StreamEvent
from possibilities.streaming.reducer import StreamState, reduce_event
from possibilities.streaming.sse import SSEDecoder

logger = logging.getLogger(__name__)


async def iter_events(
    chunks: AsyncIterable[Union[bytes, str]],
    cancel_token: Optional[CancellationToken] = None,
) -> AsyncIterator[StreamEvent]:
    """Decode an SSE byte stream into events.

    Stops after the first ``Done`` (``done`` event or ``[DONE]`` marker),
    or without further events once ``cancel_token`` fires.
    """
    decoder = SSEDecoder()
    async for chunk in chunks:
        if cancel_token is not None and cancel_token.cancelled:
            return
        for event in decoder.feed(chunk):
            yield event
            if isinstance(event, Done):
                return
            if cancel_token is not None and cancel_token.cancelled:
                return

    if cancel_token is not None and cancel_token.cancelled:
        return
    for event in decoder.flush():
        yield event
        if isinstance(event, Done):
            return


async def read_possibilities(
    chunks: AsyncIterable[Union[bytes, str]],
    cancel_token: Optional[CancellationToken] = None,
    state: Optional[StreamState] = None,
) -> StreamState:
    """Fold a whole SSE byte stream into a ``StreamState``."""
    state = state if state is not None else StreamState()
    async for event in iter_events(chunks, cancel_token):
        state = reduce_event(state, event)
    return state


class PossibilitiesClient:
    """Async HTTP client for the possibilities API.

    Example::

        async with PossibilitiesClient("http://localhost:8000") as client:
            state = await client.collect(request)
            for candidate in state.ranked():
                print(candidate.model, candidate.confidence)
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 300.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def __aenter__(self) -> "PossibilitiesClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def stream(
        self,
        request: dict[str, Any],
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        """POST a chat completion request and yield events as they arrive.

        Cancelling the token closes the connection, which tells the server
        to stop generating.
        """
        payload = dict(request)
        payload["options"] = {**payload.get("options", {}), "stream": True}

        session = self._get_session()
        async with session.post(f"{self.base_url}/chat/completions", json=payload) as resp:
            if resp.status != 200:
                body = await resp.text()
                logger.warning("Chat completions returned status %d: %s", resp.status, body[:200])
                resp.raise_for_status()
            if cancel_token is not None:
                cancel_token.add_callback(resp.close)
            try:
                async for event in iter_events(resp.content.iter_any(), cancel_token):
                    yield event
            except aiohttp.ClientConnectionError:
                if cancel_token is None or not cancel_token.cancelled:
                    raise
                logger.debug("Connection closed after cancellation")

    async def collect(
        self,
        request: dict[str, Any],
        cancel_token: Optional[CancellationToken] = None,
    ) -> StreamState:
        state = StreamState()
        async for event in self.stream(request, cancel_token):
            state = reduce_event(state, event)
        return state

    async def list_models(self, provider: Optional[str] = None) -> list[dict]:
        params = {"provider": provider} if provider else None
        session = self._get_session()
        async with session.get(f"{self.base_url}/models", params=params) as resp:
            resp.raise_for_status()
            data = await resp.json()
        return data.get("models", [])
