"""Generation orchestrator: fans requests out to providers and ranks results.

Three entry points with different failure policies:

- ``generate_single``: one call; lookup and credential errors propagate,
  everything else becomes ``GenerationFailed``.
- ``generate_variations``: one model at several temperatures, fail-fast.
  The first failure cancels the sibling calls.
- ``generate_multi_model``: several models, best-effort. Failed models are
  dropped and reported, and the call only fails if every model failed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import nullcontext
from typing import Optional, Sequence

from possibilities.generation.cancellation import CancellationToken
from possibilities.generation.config import Candidate, MultiModelResult, OrchestratorConfig
from possibilities.generation.scoring import rank_candidates
from possibilities.generation.sweep import default_token_limit, temperature_sweep
from possibilities.logging_config import log_performance
from possibilities.model_providers.base import BaseProvider
from possibilities.model_providers.config import (
    GenerationOptions,
    Message,
    ModelCatalog,
    ModelInfo,
)
from possibilities.model_providers.exceptions import (
    CredentialMissing,
    GenerationCancelled,
    GenerationFailed,
    ModelNotFound,
    ProviderNotFound,
    UpstreamError,
)
from possibilities.model_providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

# Errors that are the caller's to handle, never wrapped as GenerationFailed
_PASSTHROUGH = (ModelNotFound, ProviderNotFound, CredentialMissing, GenerationCancelled)


class GenerationOrchestrator:
    """Runs provider calls concurrently and ranks the resulting candidates.

    Example::

        orchestrator = GenerationOrchestrator(ModelCatalog(), ProviderRegistry(credentials))
        candidates = await orchestrator.generate_variations(messages, "gpt-4o-mini", count=3)
        best = candidates[0]
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        registry: ProviderRegistry,
        config: Optional[OrchestratorConfig] = None,
    ):
        self.catalog = catalog
        self.registry = registry
        self.config = config or OrchestratorConfig()

    # ── Resolution helpers ────────────────────────────────────────────

    def resolve(self, model_id: str) -> tuple[ModelInfo, BaseProvider]:
        """Look up a model and the adapter serving it.

        Raises:
            ModelNotFound: Unknown model id.
            ProviderNotFound: The model's provider is not available.
        """
        model = self.catalog.get(model_id)
        return model, self.registry.provider_for(model.provider_id)

    def prepare_messages(self, messages: Sequence[Message], model: ModelInfo) -> list[Message]:
        """Drop attachments whose content type the model does not accept."""
        prepared = []
        for msg in messages:
            kept = tuple(a for a in msg.attachments if model.accepts(a.mime_type))
            if len(kept) != len(msg.attachments):
                dropped = [a.name for a in msg.attachments if a not in kept]
                logger.info(
                    "Dropping %d attachment(s) unsupported by %s: %s",
                    len(dropped), model.model_id, ", ".join(dropped),
                )
                msg = Message(
                    role=msg.role,
                    content=msg.content,
                    id=msg.id,
                    timestamp=msg.timestamp,
                    attachments=kept,
                )
            prepared.append(msg)
        return prepared

    def resolve_options(
        self,
        model: ModelInfo,
        options: Optional[GenerationOptions] = None,
    ) -> GenerationOptions:
        """Fill in the token budget when the caller left it unset."""
        options = options or GenerationOptions()
        if options.max_tokens is None:
            options = options.with_max_tokens(default_token_limit(
                model,
                self.config.possibility_max_tokens,
                self.config.reasoning_max_tokens,
            ))
        return options

    def new_limiter(self) -> Optional[asyncio.Semaphore]:
        """Concurrency limit shared by the calls of one top-level request."""
        if self.config.max_concurrency is None:
            return None
        return asyncio.Semaphore(self.config.max_concurrency)

    # ── Public API ────────────────────────────────────────────────────

    @log_performance()
    async def generate_single(
        self,
        messages: Sequence[Message],
        model_id: str,
        options: Optional[GenerationOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Candidate:
        """Generate one candidate from one model."""
        return await self._generate_single(
            messages, model_id, options, cancel_token, self.new_limiter()
        )

    @log_performance()
    async def generate_variations(
        self,
        messages: Sequence[Message],
        model_id: str,
        count: Optional[int] = None,
        base_options: Optional[GenerationOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> list[Candidate]:
        """Generate ``count`` candidates over a temperature sweep, ranked.

        All-or-nothing: the first failing call cancels the others and its
        error is raised.
        """
        return await self._generate_variations(
            messages, model_id, count, base_options, cancel_token, self.new_limiter()
        )

    @log_performance()
    async def generate_multi_model(
        self,
        messages: Sequence[Message],
        model_ids: Sequence[str],
        variations_per_model: Optional[int] = None,
        base_options: Optional[GenerationOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> MultiModelResult:
        """Generate variations from several models, tolerating per-model failures.

        Raises:
            GenerationFailed: Every model failed.
            GenerationCancelled: The request's token fired.
        """
        if not model_ids:
            raise ValueError("At least one model id is required")
        if variations_per_model is not None and variations_per_model < 1:
            raise ValueError(
                f"Variation count must be at least 1, got {variations_per_model}"
            )

        limiter = self.new_limiter()
        results = await asyncio.gather(
            *(
                self._generate_variations(
                    messages, model_id, variations_per_model, base_options, cancel_token, limiter
                )
                for model_id in model_ids
            ),
            return_exceptions=True,
        )

        result = MultiModelResult()
        for model_id, outcome in zip(model_ids, results):
            if isinstance(outcome, GenerationCancelled):
                raise outcome
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, Exception):
                logger.warning("Model %s failed: %s", model_id, outcome)
                result.failed_models[model_id] = str(outcome)
                continue
            result.candidates.extend(outcome)

        if not result.candidates:
            raise GenerationFailed(
                f"All {len(model_ids)} model(s) failed: "
                + "; ".join(f"{m}: {e}" for m, e in result.failed_models.items())
            )

        if result.failed_count:
            logger.info(
                "Multi-model generation finished with %d of %d model(s) failed",
                result.failed_count, len(model_ids),
            )
        result.candidates = rank_candidates(result.candidates)
        return result

    async def validate_credential(self, provider_id: str, api_key: Optional[str] = None) -> bool:
        """Check a provider key with a tiny generation call.

        Raises:
            ProviderNotFound: Unknown provider id.
        """
        provider = self.registry.provider_for(provider_id)
        return await provider.validate_credential(api_key)

    # ── Internals ─────────────────────────────────────────────────────

    async def _generate_single(
        self,
        messages: Sequence[Message],
        model_id: str,
        options: Optional[GenerationOptions],
        cancel_token: Optional[CancellationToken],
        limiter: Optional[asyncio.Semaphore],
    ) -> Candidate:
        model, provider = self.resolve(model_id)
        options = self.resolve_options(model, options)
        prepared = self.prepare_messages(messages, model)

        call = self._call(provider, prepared, model, options, limiter)
        try:
            if cancel_token is not None:
                response = await cancel_token.run(call)
            else:
                response = await call
        except _PASSTHROUGH:
            raise
        except asyncio.TimeoutError as exc:
            timeout = self.config.provider_timeout_seconds
            logger.warning("%s timed out after %ss for %s", provider.provider_id, timeout, model_id)
            raise GenerationFailed(
                f"{provider.provider_id} timed out after {timeout}s",
                provider=provider.provider_id,
                cause=exc,
            ) from exc
        except UpstreamError as exc:
            raise GenerationFailed(str(exc), provider=exc.provider, cause=exc.cause) from exc
        except Exception as exc:
            raise GenerationFailed(
                f"{provider.provider_id} generation failed: {exc}",
                provider=provider.provider_id,
                cause=exc,
            ) from exc

        return Candidate(
            id=str(uuid.uuid4()),
            model=model.model_id,
            provider=provider.provider_id,
            content=response.content,
            confidence=response.confidence,
            temperature=options.temperature,
            finish_reason=response.finish_reason,
            token_usage=response.token_usage,
        )

    async def _generate_variations(
        self,
        messages: Sequence[Message],
        model_id: str,
        count: Optional[int],
        base_options: Optional[GenerationOptions],
        cancel_token: Optional[CancellationToken],
        limiter: Optional[asyncio.Semaphore],
    ) -> list[Candidate]:
        temperatures = temperature_sweep(
            count if count is not None else self.config.default_variations
        )
        self.resolve(model_id)  # Fail before spawning anything
        base = base_options or GenerationOptions()

        tasks = [
            asyncio.ensure_future(self._generate_single(
                messages, model_id, base.with_temperature(t), cancel_token, limiter
            ))
            for t in temperatures
        ]
        try:
            candidates = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return rank_candidates(candidates)

    async def _call(
        self,
        provider: BaseProvider,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
        limiter: Optional[asyncio.Semaphore],
    ):
        async with limiter if limiter is not None else nullcontext():
            return await asyncio.wait_for(
                provider.generate(messages, model, options),
                timeout=self.config.provider_timeout_seconds,
            )
