"""Server-side stream emitter.

Runs one task per permutation and merges their events onto a single
queue, so the consumer sees each candidate's events in order while
candidates interleave freely. Provider failures become per-candidate
``StreamError`` events, a cancelled request adds one stream-level
``StreamError``, and the stream always ends with one ``Done``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import nullcontext
from typing import AsyncIterator, Optional, Sequence

from possibilities.generation.cancellation import CancellationToken
from possibilities.generation.orchestrator import GenerationOrchestrator
from possibilities.generation.permutations import Permutation, prepare_messages
from possibilities.logging_config import PerformanceTimer
from possibilities.model_providers.config import GenerationOptions, Message, ProviderResponse
from possibilities.model_providers.exceptions import ModelNotFound, ProviderNotFound
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

_FINISHED = object()  # Queue marker: one permutation task has ended


class PossibilityStreamer:
    """Streams possibilities for a set of permutations.

    Example::

        streamer = PossibilityStreamer(orchestrator)
        async for event in streamer.stream(messages, permutations, max_tokens=100):
            yield encode_sse(event)
    """

    def __init__(self, orchestrator: GenerationOrchestrator):
        self.orchestrator = orchestrator

    async def stream(
        self,
        messages: Sequence[Message],
        permutations: Sequence[Permutation],
        max_tokens: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        queue: asyncio.Queue = asyncio.Queue()
        limiter = self.orchestrator.new_limiter()

        tasks = []
        for permutation in permutations:
            task = asyncio.ensure_future(
                self._run_permutation(permutation, messages, max_tokens, queue, limiter)
            )
            # Runs however the task ends, even if cancelled before it started
            task.add_done_callback(lambda _: queue.put_nowait(_FINISHED))
            if cancel_token is not None:
                cancel_token.register(task)
            tasks.append(task)

        logger.info("Streaming %d permutation(s)", len(tasks))
        remaining = len(tasks)
        try:
            while remaining:
                item = await queue.get()
                if item is _FINISHED:
                    remaining -= 1
                    continue
                yield item
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if cancel_token is not None and cancel_token.cancelled:
            # Stream-level error: in-flight candidates were dropped
            logger.info("Stream cancelled: %s", cancel_token.reason)
            yield StreamError(message=f"cancelled: {cancel_token.reason}")
        yield Done()

    async def _run_permutation(
        self,
        permutation: Permutation,
        messages: Sequence[Message],
        max_tokens: Optional[int],
        queue: asyncio.Queue,
        limiter: Optional[asyncio.Semaphore],
    ) -> None:
        candidate_id = permutation.id
        try:
            model, provider = self.orchestrator.resolve(permutation.model)
        except (ModelNotFound, ProviderNotFound) as exc:
            logger.warning("Skipping permutation %s: %s", candidate_id, exc)
            queue.put_nowait(StreamError(message=str(exc), candidate_id=candidate_id))
            return

        prepared = self.orchestrator.prepare_messages(
            prepare_messages(messages, permutation.system_prompt, permutation.system_instruction),
            model,
        )
        options = self.orchestrator.resolve_options(
            model,
            GenerationOptions(temperature=permutation.temperature, max_tokens=max_tokens),
        )

        queue.put_nowait(PossibilityStart(
            candidate_id=candidate_id,
            model=model.model_id,
            provider=provider.provider_id,
            temperature=None if model.is_reasoning_model else permutation.temperature,
            system_instruction=(
                permutation.system_instruction.name if permutation.system_instruction else None
            ),
        ))

        async def consume() -> Optional[ProviderResponse]:
            final = None
            async for chunk in provider.stream(prepared, model, options):
                if chunk.text:
                    queue.put_nowait(Token(candidate_id=candidate_id, text=chunk.text))
                if chunk.is_final:
                    final = chunk.response
            return final

        timeout = self.orchestrator.config.provider_timeout_seconds
        try:
            with PerformanceTimer(f"possibility {candidate_id}"):
                async with limiter if limiter is not None else nullcontext():
                    response = await asyncio.wait_for(consume(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Possibility %s timed out after %ss", candidate_id, timeout)
            queue.put_nowait(StreamError(
                message=f"{provider.provider_id} timed out after {timeout}s",
                candidate_id=candidate_id,
            ))
            return
        except Exception as exc:
            logger.warning("Possibility %s failed: %s", candidate_id, exc)
            queue.put_nowait(StreamError(message=str(exc), candidate_id=candidate_id))
            return

        if response is not None and response.confidence is not None:
            queue.put_nowait(Confidence(candidate_id=candidate_id, confidence=response.confidence))
        queue.put_nowait(PossibilityComplete(
            candidate_id=candidate_id,
            finish_reason=response.finish_reason if response is not None else None,
        ))
