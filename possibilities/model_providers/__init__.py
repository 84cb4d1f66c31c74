"""Multi-Provider Model Access.

Provides a unified interface to multiple LLM backends (OpenAI, Anthropic,
Google Gemini, and OpenAI-compatible APIs such as Mistral, Together, xAI,
Ollama or custom backends) with normalized responses, just-in-time
credential lookup, and a typed error taxonomy.
"""

from possibilities.model_providers.config import (
    MODEL_CATALOG,
    TOKEN_LIMITS,
    Attachment,
    GenerationOptions,
    Message,
    MessageRole,
    ModelCatalog,
    ModelInfo,
    ModelPriority,
    ProviderConfig,
    ProviderResponse,
    ProviderType,
    StreamChunk,
    TokenUsage,
)
from possibilities.model_providers.credentials import (
    ChainedCredentialSource,
    CredentialSource,
    EnvironmentCredentialSource,
    StaticCredentialSource,
    default_credential_source,
)
from possibilities.model_providers.exceptions import (
    CredentialMissing,
    GenerationCancelled,
    GenerationFailed,
    ModelNotFound,
    PossibilityError,
    ProviderNotFound,
    StreamParseError,
    UpstreamError,
)
from possibilities.model_providers.base import BaseProvider
from possibilities.model_providers.registry import ProviderRegistry, create_provider

__all__ = [
    # Config
    "ProviderType",
    "ModelPriority",
    "MessageRole",
    "ModelInfo",
    "ModelCatalog",
    "ProviderConfig",
    "ProviderResponse",
    "StreamChunk",
    "TokenUsage",
    "Attachment",
    "Message",
    "GenerationOptions",
    "MODEL_CATALOG",
    "TOKEN_LIMITS",
    # Credentials
    "CredentialSource",
    "StaticCredentialSource",
    "EnvironmentCredentialSource",
    "ChainedCredentialSource",
    "default_credential_source",
    # Errors
    "PossibilityError",
    "ModelNotFound",
    "ProviderNotFound",
    "CredentialMissing",
    "UpstreamError",
    "GenerationFailed",
    "GenerationCancelled",
    "StreamParseError",
    # Base
    "BaseProvider",
    # Registry
    "ProviderRegistry",
    "create_provider",
]
