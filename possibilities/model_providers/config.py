"""Configuration types and model catalog for the multi-provider system."""

import enum
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterable, Optional

from possibilities.model_providers.exceptions import ModelNotFound


class ProviderType(enum.Enum):
    """Supported LLM provider backends."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    MISTRAL = "mistral"
    TOGETHER = "together"
    XAI = "xai"
    OLLAMA = "ollama"
    CUSTOM = "custom"  # Named OpenAI-compatible backend with its own base URL


class ModelPriority(enum.Enum):
    """How prominently a model is offered."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# ── Content types ─────────────────────────────────────────────────────

TEXT_ONLY = ("text/plain",)
TEXT_AND_IMAGES = ("text/plain", "image/jpeg", "image/png", "image/webp", "image/gif")
MULTIMODAL = TEXT_AND_IMAGES + ("audio/wav", "audio/mp3")

TOKEN_LIMITS = {
    "possibility_default": 100,    # Default tokens for possibility generation
    "possibility_reasoning": 1500,  # Reasoning models need room to think
    "continuation_default": 1000,  # Continuing from a chosen possibility
}


@dataclass(frozen=True)
class ModelInfo:
    """Metadata for a specific model."""

    model_id: str
    provider: ProviderType
    display_name: str
    max_tokens: int = 8192
    supports_confidence_score: bool = False
    accepted_content_types: tuple[str, ...] = TEXT_ONLY
    is_reasoning_model: bool = False
    priority: ModelPriority = ModelPriority.MEDIUM
    backend: Optional[str] = None  # Backend name for ProviderType.CUSTOM models

    @property
    def provider_id(self) -> str:
        """Key used for credential lookup and provider registration."""
        return self.backend or self.provider.value

    def accepts(self, mime_type: str) -> bool:
        return mime_type in self.accepted_content_types


@dataclass
class ProviderConfig:
    """Connection configuration for a provider.

    API keys are not part of the config: adapters fetch them per call from
    the injected credential source.
    """

    provider: ProviderType
    base_url: Optional[str] = None
    name: Optional[str] = None  # Required for ProviderType.CUSTOM
    timeout_seconds: float = 60.0
    extra: dict = field(default_factory=dict)

    @property
    def provider_id(self) -> str:
        if self.provider == ProviderType.CUSTOM:
            return self.name or ProviderType.CUSTOM.value
        return self.provider.value

    @property
    def requires_api_key(self) -> bool:
        return self.provider != ProviderType.OLLAMA


@dataclass(frozen=True)
class Attachment:
    """File attached to a message; ``data`` is base64 encoded."""

    name: str
    mime_type: str
    data: str


@dataclass(frozen=True)
class Message:
    """One conversation turn. Immutable once appended."""

    role: MessageRole
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attachments: tuple[Attachment, ...] = ()

    @classmethod
    def user(cls, content: str, **kwargs) -> "Message":
        return cls(role=MessageRole.USER, content=content, **kwargs)

    @classmethod
    def system(cls, content: str, **kwargs) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content, **kwargs)

    @classmethod
    def assistant(cls, content: str, **kwargs) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content, **kwargs)


@dataclass(frozen=True)
class GenerationOptions:
    """Per-request sampling options. ``None`` means provider default."""

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop_sequences: Optional[tuple[str, ...]] = None

    def with_temperature(self, temperature: float) -> "GenerationOptions":
        return replace(self, temperature=temperature)

    def with_max_tokens(self, max_tokens: int) -> "GenerationOptions":
        return replace(self, max_tokens=max_tokens)


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ProviderResponse:
    """Normalized response from any provider.

    ``confidence`` is ``None`` when the provider exposed no log-probabilities.
    """

    content: str = ""
    confidence: Optional[float] = None
    finish_reason: str = "stop"
    token_usage: Optional[TokenUsage] = None
    logprobs: Optional[list[float]] = None
    raw_response: object = None


@dataclass
class StreamChunk:
    """One piece of a provider token stream.

    Text chunks carry ``text``; the final chunk carries ``response``.
    """

    text: str = ""
    response: Optional[ProviderResponse] = None

    @property
    def is_final(self) -> bool:
        return self.response is not None


# ── Model catalog ─────────────────────────────────────────────────────

MODEL_CATALOG: dict[str, ModelInfo] = {
    # OpenAI
    "gpt-4o": ModelInfo(
        model_id="gpt-4o",
        provider=ProviderType.OPENAI,
        display_name="GPT-4o",
        max_tokens=128_000,
        supports_confidence_score=True,
        accepted_content_types=MULTIMODAL,
        priority=ModelPriority.HIGH,
    ),
    "gpt-4o-mini": ModelInfo(
        model_id="gpt-4o-mini",
        provider=ProviderType.OPENAI,
        display_name="GPT-4o Mini",
        max_tokens=128_000,
        supports_confidence_score=True,
        accepted_content_types=TEXT_AND_IMAGES,
        priority=ModelPriority.HIGH,
    ),
    "gpt-4-turbo": ModelInfo(
        model_id="gpt-4-turbo",
        provider=ProviderType.OPENAI,
        display_name="GPT-4 Turbo",
        max_tokens=128_000,
        supports_confidence_score=True,
        accepted_content_types=TEXT_AND_IMAGES,
    ),
    "o1-mini": ModelInfo(
        model_id="o1-mini",
        provider=ProviderType.OPENAI,
        display_name="o1-mini",
        max_tokens=65_536,
        is_reasoning_model=True,
    ),
    "o3-mini": ModelInfo(
        model_id="o3-mini",
        provider=ProviderType.OPENAI,
        display_name="o3-mini",
        max_tokens=65_536,
        is_reasoning_model=True,
        priority=ModelPriority.HIGH,
    ),
    # Anthropic
    "claude-3-5-sonnet-20241022": ModelInfo(
        model_id="claude-3-5-sonnet-20241022",
        provider=ProviderType.ANTHROPIC,
        display_name="Claude 3.5 Sonnet",
        max_tokens=8_192,
        accepted_content_types=TEXT_AND_IMAGES,
        priority=ModelPriority.HIGH,
    ),
    "claude-3-5-haiku-20241022": ModelInfo(
        model_id="claude-3-5-haiku-20241022",
        provider=ProviderType.ANTHROPIC,
        display_name="Claude 3.5 Haiku",
        max_tokens=8_192,
        accepted_content_types=TEXT_AND_IMAGES,
        priority=ModelPriority.HIGH,
    ),
    "claude-3-opus-20240229": ModelInfo(
        model_id="claude-3-opus-20240229",
        provider=ProviderType.ANTHROPIC,
        display_name="Claude 3 Opus",
        max_tokens=4_096,
        accepted_content_types=TEXT_AND_IMAGES,
    ),
    # Google
    "gemini-2.0-flash": ModelInfo(
        model_id="gemini-2.0-flash",
        provider=ProviderType.GOOGLE,
        display_name="Gemini 2.0 Flash",
        max_tokens=8_192,
        supports_confidence_score=True,
        accepted_content_types=TEXT_AND_IMAGES,
        priority=ModelPriority.HIGH,
    ),
    "gemini-1.5-pro": ModelInfo(
        model_id="gemini-1.5-pro",
        provider=ProviderType.GOOGLE,
        display_name="Gemini 1.5 Pro",
        max_tokens=8_192,
        accepted_content_types=TEXT_AND_IMAGES,
    ),
    "gemini-1.5-flash": ModelInfo(
        model_id="gemini-1.5-flash",
        provider=ProviderType.GOOGLE,
        display_name="Gemini 1.5 Flash",
        max_tokens=8_192,
        accepted_content_types=TEXT_AND_IMAGES,
    ),
    # Mistral
    "mistral-large-latest": ModelInfo(
        model_id="mistral-large-latest",
        provider=ProviderType.MISTRAL,
        display_name="Mistral Large",
        max_tokens=8_192,
        supports_confidence_score=True,
    ),
    "mistral-small-latest": ModelInfo(
        model_id="mistral-small-latest",
        provider=ProviderType.MISTRAL,
        display_name="Mistral Small",
        max_tokens=8_192,
        supports_confidence_score=True,
        priority=ModelPriority.LOW,
    ),
    # Together AI
    "meta-llama/Llama-3.3-70B-Instruct-Turbo": ModelInfo(
        model_id="meta-llama/Llama-3.3-70B-Instruct-Turbo",
        provider=ProviderType.TOGETHER,
        display_name="Llama 3.3 70B",
        max_tokens=8_192,
        supports_confidence_score=True,
        priority=ModelPriority.HIGH,
    ),
    "meta-llama/Meta-Llama-3.1-8B-Instruct-Turbo": ModelInfo(
        model_id="meta-llama/Meta-Llama-3.1-8B-Instruct-Turbo",
        provider=ProviderType.TOGETHER,
        display_name="Llama 3.1 8B",
        max_tokens=8_192,
        supports_confidence_score=True,
        priority=ModelPriority.LOW,
    ),
    "deepseek-ai/DeepSeek-V3": ModelInfo(
        model_id="deepseek-ai/DeepSeek-V3",
        provider=ProviderType.TOGETHER,
        display_name="DeepSeek-V3",
        max_tokens=8_192,
        supports_confidence_score=True,
        priority=ModelPriority.HIGH,
    ),
    # xAI
    "grok-3-latest": ModelInfo(
        model_id="grok-3-latest",
        provider=ProviderType.XAI,
        display_name="Grok 3",
        max_tokens=8_192,
        supports_confidence_score=True,
        priority=ModelPriority.HIGH,
    ),
    # Ollama (local)
    "llama3.3": ModelInfo(
        model_id="llama3.3",
        provider=ProviderType.OLLAMA,
        display_name="Llama 3.3 70B (local)",
        max_tokens=4_096,
        priority=ModelPriority.LOW,
    ),
    "qwen2.5": ModelInfo(
        model_id="qwen2.5",
        provider=ProviderType.OLLAMA,
        display_name="Qwen 2.5 (local)",
        max_tokens=4_096,
        priority=ModelPriority.LOW,
    ),
}


class ModelCatalog:
    """Read-only lookup from model id to ``ModelInfo``.

    Built once at startup (from ``MODEL_CATALOG`` unless the caller supplies
    models) and never mutated afterwards.
    """

    def __init__(self, models: Optional[Iterable[ModelInfo]] = None):
        source = MODEL_CATALOG.values() if models is None else models
        self._models: dict[str, ModelInfo] = {m.model_id: m for m in source}

    def get(self, model_id: str) -> ModelInfo:
        """Look up model info. Raises ``ModelNotFound`` if unknown."""
        info = self._models.get(model_id)
        if info is None:
            raise ModelNotFound(model_id)
        return info

    def find(self, model_id: str) -> Optional[ModelInfo]:
        return self._models.get(model_id)

    def for_provider(self, provider_id: str) -> list[ModelInfo]:
        """Return all catalog entries served by a provider id."""
        return [m for m in self._models.values() if m.provider_id == provider_id]

    def all(self) -> list[ModelInfo]:
        return list(self._models.values())

    def popular(self) -> list[ModelInfo]:
        return [m for m in self._models.values() if m.priority == ModelPriority.HIGH]

    def provider_ids(self) -> list[str]:
        seen: dict[str, None] = {}
        for m in self._models.values():
            seen.setdefault(m.provider_id, None)
        return list(seen)

    def with_models(self, models: Iterable[ModelInfo]) -> "ModelCatalog":
        """Return a new catalog extended with extra models (e.g. custom backends)."""
        return ModelCatalog(list(self._models.values()) + list(models))

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)
