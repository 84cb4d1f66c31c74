"""Possibilities API Routes.

Endpoints for the model catalog, credential validation, and streamed or
collected possibility generation.
"""

import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from possibilities.api.models import (
    ChatCompletionRequest,
    ModelListResponse,
    ModelResponse,
    SinglePossibilityRequest,
    ValidateKeyRequest,
    ValidateKeyResponse,
)
from possibilities.engine import PossibilityEngine
from possibilities.generation.cancellation import CancellationToken
from possibilities.logging_config import RequestContext
from possibilities.model_providers.exceptions import GenerationCancelled
from possibilities.streaming.events import StreamEvent
from possibilities.streaming.reducer import StreamState, reduce_event
from possibilities.streaming.sse import encode_done, encode_sse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Possibilities"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_engine(request: Request) -> PossibilityEngine:
    return request.app.state.engine


# ── Catalog & credentials ────────────────────────────────────────────


@router.get("/models", response_model=ModelListResponse)
async def list_models(
    provider: Optional[str] = Query(default=None),
    engine: PossibilityEngine = Depends(get_engine),
) -> ModelListResponse:
    """List catalog models, optionally for one provider."""
    models = [ModelResponse.from_info(m) for m in engine.list_models(provider)]
    return ModelListResponse(models=models, count=len(models))


@router.post("/providers/{provider_id}/validate", response_model=ValidateKeyResponse)
async def validate_provider_key(
    provider_id: str,
    body: Optional[ValidateKeyRequest] = Body(default=None),
    engine: PossibilityEngine = Depends(get_engine),
) -> ValidateKeyResponse:
    """Check a provider API key (the supplied one, or the configured one)."""
    api_key = body.api_key if body else None
    valid = await engine.validate_credential(provider_id, api_key)
    return ValidateKeyResponse(provider=provider_id, valid=valid)


# ── Generation ───────────────────────────────────────────────────────


async def _sse_body(
    events: AsyncIterator[StreamEvent],
    cancel_token: CancellationToken,
    context: RequestContext,
) -> AsyncIterator[str]:
    finished = False
    with context:
        try:
            async for event in events:
                yield encode_sse(event)
            yield encode_done()
            finished = True
        finally:
            if not finished:
                cancel_token.cancel("client disconnected")
            await events.aclose()
            cancel_token.close()
            logger.info("Stream closed after %.1fms", context.elapsed_ms)


async def _collect(
    events: AsyncIterator[StreamEvent],
    cancel_token: CancellationToken,
) -> dict:
    state = StreamState()
    try:
        async for event in events:
            state = reduce_event(state, event)
    finally:
        cancel_token.close()
    if cancel_token.cancelled:
        raise GenerationCancelled(f"Generation cancelled: {cancel_token.reason}")
    return {
        "possibilities": [c.to_dict() for c in state.ranked()],
        "failed": [f.to_dict() for f in state.errors],
    }


@router.post("/chat/completions")
async def chat_completions(
    request: ChatCompletionRequest,
    engine: PossibilityEngine = Depends(get_engine),
):
    """Generate possibilities for every permutation of the request settings.

    Streams SSE events when ``options.stream`` is true, otherwise returns
    the ranked possibilities and failures as JSON.
    """
    options = request.options
    max_tokens = options.max_tokens
    if max_tokens is None and options.mode == "continuation":
        max_tokens = engine.config.continuation_max_tokens

    context = RequestContext(extra={"mode": options.mode})
    if options.continuation_id:
        context.extra["continuation_id"] = options.continuation_id

    cancel_token = CancellationToken(timeout=options.deadline_seconds)
    events = engine.stream_possibilities(
        request.to_messages(),
        request.settings.to_permutation_settings(),
        max_tokens=max_tokens,
        cancel_token=cancel_token,
    )

    if options.stream:
        return StreamingResponse(
            _sse_body(events, cancel_token, context),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )
    with context:
        return await _collect(events, cancel_token)


@router.post("/possibilities/{possibility_id}")
async def single_possibility(
    possibility_id: str,
    request: SinglePossibilityRequest,
    engine: PossibilityEngine = Depends(get_engine),
):
    """Generate (or regenerate) one possibility for a given permutation."""
    if request.permutation.id != possibility_id:
        raise HTTPException(status_code=400, detail="Permutation ID mismatch")

    cancel_token = CancellationToken(timeout=request.options.deadline_seconds)
    events = engine.stream_permutations(
        [m.to_message() for m in request.messages],
        [request.permutation.to_permutation()],
        max_tokens=request.options.max_tokens,
        cancel_token=cancel_token,
    )
    context = RequestContext(extra={"possibility_id": possibility_id})

    if request.options.stream:
        return StreamingResponse(
            _sse_body(events, cancel_token, context),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )
    with context:
        return await _collect(events, cancel_token)
