"""The possibilities engine: catalog, providers, orchestrator and streamer wired together.

The engine is built explicitly by the caller and passed to whoever needs
it (the FastAPI app keeps it on ``app.state``); there is no module-level
instance.
"""

import logging
from typing import AsyncIterator, Optional, Sequence

from possibilities.generation.cancellation import CancellationToken
from possibilities.generation.config import Candidate, MultiModelResult, OrchestratorConfig
from possibilities.generation.orchestrator import GenerationOrchestrator
from possibilities.generation.permutations import (
    Permutation,
    PermutationGenerator,
    PermutationSettings,
)
from possibilities.model_providers.compatible_provider import register_backend_models
from possibilities.model_providers.config import (
    GenerationOptions,
    Message,
    ModelCatalog,
    ModelInfo,
    ProviderConfig,
    ProviderType,
)
from possibilities.model_providers.credentials import CredentialSource, default_credential_source
from possibilities.model_providers.registry import ProviderRegistry
from possibilities.settings import Settings, get_settings
from possibilities.streaming.emitter import PossibilityStreamer
from possibilities.streaming.events import StreamEvent

logger = logging.getLogger(__name__)


class PossibilityEngine:
    """Facade over the orchestrator (batch) and the streamer (SSE)."""

    def __init__(
        self,
        catalog: ModelCatalog,
        registry: ProviderRegistry,
        config: Optional[OrchestratorConfig] = None,
    ):
        self.catalog = catalog
        self.registry = registry
        self.orchestrator = GenerationOrchestrator(catalog, registry, config)
        self.streamer = PossibilityStreamer(self.orchestrator)
        self.permutations = PermutationGenerator(catalog)

    @property
    def config(self) -> OrchestratorConfig:
        return self.orchestrator.config

    # ── Catalog ───────────────────────────────────────────────────────

    def list_models(self, provider: Optional[str] = None) -> list[ModelInfo]:
        if provider:
            return self.catalog.for_provider(provider)
        return self.catalog.all()

    def popular_models(self) -> list[ModelInfo]:
        return self.catalog.popular()

    # ── Batch generation ──────────────────────────────────────────────

    async def generate_single(
        self,
        messages: Sequence[Message],
        model_id: str,
        options: Optional[GenerationOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Candidate:
        return await self.orchestrator.generate_single(messages, model_id, options, cancel_token)

    async def generate_variations(
        self,
        messages: Sequence[Message],
        model_id: str,
        count: Optional[int] = None,
        base_options: Optional[GenerationOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> list[Candidate]:
        return await self.orchestrator.generate_variations(
            messages, model_id, count, base_options, cancel_token
        )

    async def generate_multi_model(
        self,
        messages: Sequence[Message],
        model_ids: Sequence[str],
        variations_per_model: Optional[int] = None,
        base_options: Optional[GenerationOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> MultiModelResult:
        return await self.orchestrator.generate_multi_model(
            messages, model_ids, variations_per_model, base_options, cancel_token
        )

    async def validate_credential(self, provider_id: str, api_key: Optional[str] = None) -> bool:
        return await self.orchestrator.validate_credential(provider_id, api_key)

    # ── Streaming ─────────────────────────────────────────────────────

    def stream_permutations(
        self,
        messages: Sequence[Message],
        permutations: Sequence[Permutation],
        max_tokens: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        return self.streamer.stream(messages, permutations, max_tokens, cancel_token)

    def stream_possibilities(
        self,
        messages: Sequence[Message],
        settings: PermutationSettings,
        max_tokens: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one possibility per permutation of ``settings``."""
        permutations = self.permutations.generate(settings)
        logger.info(
            "Generated %d permutation(s) for %d provider(s)",
            len(permutations), len(settings.enabled_providers),
        )
        return self.stream_permutations(messages, permutations, max_tokens, cancel_token)


def build_engine(
    settings: Optional[Settings] = None,
    credentials: Optional[CredentialSource] = None,
    catalog: Optional[ModelCatalog] = None,
) -> PossibilityEngine:
    """Build an engine from settings.

    Custom OpenAI-compatible backends listed in
    ``settings.compatible_backends`` are registered with the provider
    registry, and their models from ``settings.compatible_backend_models``
    are added to the catalog.
    """
    settings = settings or get_settings()
    registry = ProviderRegistry(
        credentials or default_credential_source(),
        default_timeout_seconds=settings.provider_timeout_seconds,
    )

    for name, base_url in settings.compatible_backends.items():
        registry.configure(ProviderConfig(
            provider=ProviderType.CUSTOM,
            name=name,
            base_url=base_url,
            timeout_seconds=settings.provider_timeout_seconds,
        ))
        logger.info("Registered custom backend %s", name)

    backend_models = {
        name: models
        for name, models in settings.compatible_backend_models.items()
        if name in settings.compatible_backends
    }
    for name in set(settings.compatible_backend_models) - set(backend_models):
        logger.warning("Ignoring models for unconfigured backend %s", name)

    catalog = register_backend_models(catalog or ModelCatalog(), backend_models)
    return PossibilityEngine(catalog, registry, OrchestratorConfig.from_settings(settings))
