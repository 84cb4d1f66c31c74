"""OpenAI-compatible providers: Mistral, Together, xAI, Ollama and custom backends.

All of these speak the OpenAI chat completions API, so they reuse
``OpenAIProvider`` with a different base URL and validation model.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from possibilities.model_providers.config import (
    ModelCatalog,
    ModelInfo,
    ProviderConfig,
    ProviderType,
)
from possibilities.model_providers.credentials import CredentialSource
from possibilities.model_providers.openai_provider import OpenAIProvider

DEFAULT_BASE_URLS: dict[ProviderType, str] = {
    ProviderType.MISTRAL: "https://api.mistral.ai/v1",
    ProviderType.TOGETHER: "https://api.together.xyz/v1",
    ProviderType.XAI: "https://api.x.ai/v1",
    ProviderType.OLLAMA: "http://localhost:11434/v1",
}

VALIDATION_MODELS: dict[ProviderType, str] = {
    ProviderType.MISTRAL: "mistral-small-latest",
    ProviderType.TOGETHER: "meta-llama/Meta-Llama-3.1-8B-Instruct-Turbo",
    ProviderType.XAI: "grok-3-latest",
    ProviderType.OLLAMA: "llama3.3",
}


class OpenAICompatibleProvider(OpenAIProvider):
    """Provider for any API exposing the OpenAI chat completions format.

    Custom backends (``ProviderType.CUSTOM``) need ``config.name`` and
    ``config.base_url``; their validation model comes from
    ``config.extra["validation_model"]``.
    """

    # Not every compatible server accepts stream_options
    supports_stream_usage = False

    def __init__(self, config: ProviderConfig, credentials: CredentialSource):
        if config.provider == ProviderType.CUSTOM:
            if not config.name or not config.base_url:
                raise ValueError("Custom OpenAI-compatible backends need a name and base_url")
        elif config.provider not in DEFAULT_BASE_URLS:
            raise ValueError(f"{config.provider.value} is not an OpenAI-compatible provider")

        super().__init__(config, credentials)
        self.provider_type = config.provider
        self.validation_model_id = VALIDATION_MODELS.get(config.provider, "")
        self.base_url = config.base_url or DEFAULT_BASE_URLS[config.provider]


def backend_models(name: str, model_ids: Iterable[str], **overrides) -> list[ModelInfo]:
    """Build catalog entries for models served by a custom backend."""
    return [
        ModelInfo(
            model_id=model_id,
            provider=ProviderType.CUSTOM,
            display_name=overrides.get("display_name", f"{model_id} ({name})"),
            max_tokens=overrides.get("max_tokens", 8192),
            supports_confidence_score=overrides.get("supports_confidence_score", True),
            backend=name,
        )
        for model_id in model_ids
    ]


def register_backend_models(
    catalog: ModelCatalog,
    backends: Mapping[str, Iterable[str]],
) -> ModelCatalog:
    """Return a catalog extended with the models of each custom backend.

    ``backends`` maps backend name to the model ids it serves. The input
    catalog is left untouched.
    """
    extra: list[ModelInfo] = []
    for name, model_ids in backends.items():
        extra.extend(backend_models(name, model_ids))
    return catalog.with_models(extra) if extra else catalog
