"""Generation configuration and result types."""

from dataclasses import dataclass, field
from typing import Optional

from possibilities.model_providers.config import TOKEN_LIMITS, TokenUsage


@dataclass
class OrchestratorConfig:
    """Tuning for the generation orchestrator.

    ``max_concurrency`` of None leaves the provider fan-out unbounded.
    """

    provider_timeout_seconds: float = 60.0
    max_concurrency: Optional[int] = None
    default_variations: int = 3
    possibility_max_tokens: int = TOKEN_LIMITS["possibility_default"]
    reasoning_max_tokens: int = TOKEN_LIMITS["possibility_reasoning"]
    continuation_max_tokens: int = TOKEN_LIMITS["continuation_default"]

    def __post_init__(self):
        if self.provider_timeout_seconds <= 0:
            raise ValueError("provider_timeout_seconds must be positive")
        if self.max_concurrency is not None and self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1 (or None for unbounded)")
        if self.default_variations < 1:
            raise ValueError("default_variations must be at least 1")

    @classmethod
    def from_settings(cls, settings) -> "OrchestratorConfig":
        return cls(
            provider_timeout_seconds=settings.provider_timeout_seconds,
            max_concurrency=settings.max_concurrency,
            default_variations=settings.default_variations,
            possibility_max_tokens=settings.possibility_max_tokens,
            reasoning_max_tokens=settings.reasoning_max_tokens,
            continuation_max_tokens=settings.continuation_max_tokens,
        )


@dataclass
class Candidate:
    """One generated possibility.

    ``confidence`` is None when unknown; it is never replaced by a guess.
    """

    id: str
    model: str
    provider: str
    content: str
    confidence: Optional[float] = None
    temperature: Optional[float] = None
    finish_reason: Optional[str] = None
    token_usage: Optional[TokenUsage] = None
    is_streaming: bool = False
    system_instruction: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider": self.provider,
            "model": self.model,
            "content": self.content,
            "confidence": self.confidence,
            "temperature": self.temperature,
            "finishReason": self.finish_reason,
            "tokenUsage": self.token_usage.to_dict() if self.token_usage else None,
            "systemInstruction": self.system_instruction,
        }


@dataclass
class MultiModelResult:
    """Outcome of a best-effort multi-model generation."""

    candidates: list[Candidate] = field(default_factory=list)
    failed_models: dict[str, str] = field(default_factory=dict)  # model_id -> error message

    @property
    def failed_count(self) -> int:
        return len(self.failed_models)

    @property
    def succeeded(self) -> bool:
        return bool(self.candidates)
