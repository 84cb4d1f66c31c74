"""Provider registry: create, cache, and look up provider instances."""

from __future__ import annotations

import logging
from typing import Optional, Union

from possibilities.model_providers.base import BaseProvider
from possibilities.model_providers.config import ProviderConfig, ProviderType
from possibilities.model_providers.credentials import (
    CredentialSource,
    default_credential_source,
)
from possibilities.model_providers.exceptions import ProviderNotFound

logger = logging.getLogger(__name__)


# ── Factory ───────────────────────────────────────────────────────────


def create_provider(config: ProviderConfig, credentials: CredentialSource) -> BaseProvider:
    """Instantiate a provider from its config."""
    if config.provider == ProviderType.OPENAI:
        from possibilities.model_providers.openai_provider import OpenAIProvider
        return OpenAIProvider(config, credentials)
    elif config.provider == ProviderType.ANTHROPIC:
        from possibilities.model_providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(config, credentials)
    elif config.provider == ProviderType.GOOGLE:
        from possibilities.model_providers.google_provider import GoogleProvider
        return GoogleProvider(config, credentials)
    elif config.provider in (
        ProviderType.MISTRAL,
        ProviderType.TOGETHER,
        ProviderType.XAI,
        ProviderType.OLLAMA,
        ProviderType.CUSTOM,
    ):
        from possibilities.model_providers.compatible_provider import OpenAICompatibleProvider
        return OpenAICompatibleProvider(config, credentials)
    else:
        raise ProviderNotFound(str(config.provider))


ProviderKey = Union[ProviderType, str]


class ProviderRegistry:
    """Manages provider configs and cached instances, keyed by provider id.

    Built-in providers are created on first use with a default config;
    custom backends must be configured explicitly.

    Usage::

        registry = ProviderRegistry(credentials)
        registry.configure(ProviderConfig(
            provider=ProviderType.CUSTOM, name="local-vllm",
            base_url="http://localhost:8000/v1",
        ))
        provider = registry.provider_for("local-vllm")
        response = await provider.generate(messages, model, options)
    """

    def __init__(
        self,
        credentials: Optional[CredentialSource] = None,
        default_timeout_seconds: float = 60.0,
    ):
        self.credentials = credentials or default_credential_source()
        self.default_timeout_seconds = default_timeout_seconds
        self._configs: dict[str, ProviderConfig] = {}
        self._providers: dict[str, BaseProvider] = {}

    def configure(self, config: ProviderConfig) -> None:
        """Register or update a provider config."""
        self._configs[config.provider_id] = config
        # Invalidate cached instance
        self._providers.pop(config.provider_id, None)

    def register(self, provider: BaseProvider) -> None:
        """Register an already-built adapter under its provider id."""
        self._configs[provider.provider_id] = provider.config
        self._providers[provider.provider_id] = provider

    def provider_for(self, kind: ProviderKey) -> BaseProvider:
        """Return the cached adapter for a provider id or type.

        Raises:
            ProviderNotFound: The id is neither a built-in provider nor a
                configured custom backend.
        """
        provider_id = _provider_id(kind)
        provider = self._providers.get(provider_id)
        if provider is not None:
            return provider

        config = self._configs.get(provider_id) or self._default_config(provider_id)
        provider = create_provider(config, self.credentials)
        self._providers[provider_id] = provider
        logger.debug("Created %s provider", provider_id)
        return provider

    def _default_config(self, provider_id: str) -> ProviderConfig:
        try:
            provider = ProviderType(provider_id)
        except ValueError:
            raise ProviderNotFound(provider_id) from None
        if provider == ProviderType.CUSTOM:
            raise ProviderNotFound(provider_id)
        config = ProviderConfig(provider=provider, timeout_seconds=self.default_timeout_seconds)
        self._configs[provider_id] = config
        return config

    def list_configured(self) -> list[str]:
        """Return provider ids that have a config (explicit or defaulted)."""
        return list(self._configs.keys())

    def is_configured(self, kind: ProviderKey) -> bool:
        return _provider_id(kind) in self._configs

    def remove(self, kind: ProviderKey) -> None:
        """Remove a provider config and cached instance."""
        provider_id = _provider_id(kind)
        self._configs.pop(provider_id, None)
        self._providers.pop(provider_id, None)

    def clear(self) -> None:
        self._configs.clear()
        self._providers.clear()


def _provider_id(kind: ProviderKey) -> str:
    return kind.value if isinstance(kind, ProviderType) else kind
