"""Credential sources that hand API keys to provider adapters.

Adapters call ``get_api_key(provider_id)`` just before each request. Keys
are never cached by the adapters, logged, or persisted by this package.

Resolution order when sources are chained:
1. Stored credential (the caller's secret store)
2. Environment variable fallback (development convenience)
"""

import logging
import os
from typing import Mapping, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


# Provider id -> environment variable names, first match wins
ENV_VAR_NAMES: dict[str, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "google": ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
    "mistral": ("MISTRAL_API_KEY",),
    "together": ("TOGETHER_API_KEY",),
    "xai": ("XAI_API_KEY",),
}


@runtime_checkable
class CredentialSource(Protocol):
    """Anything that can look up an API key for a provider id."""

    def get_api_key(self, provider_id: str) -> Optional[str]:
        ...


class StaticCredentialSource:
    """In-memory credential source, typically filled from a secret store."""

    def __init__(self, keys: Optional[Mapping[str, str]] = None):
        self._keys: dict[str, str] = dict(keys or {})

    def get_api_key(self, provider_id: str) -> Optional[str]:
        key = self._keys.get(provider_id)
        return key if key and key.strip() else None

    def set_api_key(self, provider_id: str, api_key: str) -> None:
        self._keys[provider_id] = api_key

    def remove(self, provider_id: str) -> None:
        self._keys.pop(provider_id, None)

    def providers(self) -> list[str]:
        """Provider ids that currently have a non-empty key."""
        return [p for p, k in self._keys.items() if k and k.strip()]


class EnvironmentCredentialSource:
    """Reads provider keys from environment variables.

    Custom OpenAI-compatible backends are looked up as
    ``<NAME>_API_KEY`` with the backend name upper-cased.
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        var_names: Optional[Mapping[str, tuple[str, ...]]] = None,
    ):
        self._environ = os.environ if environ is None else environ
        self._var_names = dict(var_names or ENV_VAR_NAMES)

    def env_vars_for(self, provider_id: str) -> tuple[str, ...]:
        if provider_id in self._var_names:
            return self._var_names[provider_id]
        normalized = provider_id.upper().replace("-", "_").replace(".", "_")
        return (f"{normalized}_API_KEY",)

    def get_api_key(self, provider_id: str) -> Optional[str]:
        for var in self.env_vars_for(provider_id):
            value = self._environ.get(var, "")
            if value.strip():
                return value
        return None


class ChainedCredentialSource:
    """Consults sources in order; earlier sources always win.

    Put the stored-credential source first so an environment default never
    overrides an explicitly stored key.
    """

    def __init__(self, *sources: CredentialSource):
        self._sources = sources

    def get_api_key(self, provider_id: str) -> Optional[str]:
        for index, source in enumerate(self._sources):
            key = source.get_api_key(provider_id)
            if key:
                if index > 0:
                    logger.debug("Using fallback credential source #%d for %s", index, provider_id)
                return key
        return None


def default_credential_source(
    stored: Optional[CredentialSource] = None,
) -> CredentialSource:
    """Stored credentials first, then environment variables."""
    if stored is None:
        return EnvironmentCredentialSource()
    return ChainedCredentialSource(stored, EnvironmentCredentialSource())
