"""Centralized settings for the possibilities engine.

Uses pydantic-settings to load from environment variables (prefixed
POSSIBILITIES_) with defaults matching the built-in token limits.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # --- Generation ---
    provider_timeout_seconds: float = 60.0  # Soft timeout per provider call
    max_concurrency: Optional[int] = None  # None = unbounded fan-out
    default_variations: int = 3

    # --- Token limits ---
    possibility_max_tokens: int = 100
    reasoning_max_tokens: int = 1500
    continuation_max_tokens: int = 1000

    # --- Custom OpenAI-compatible backends ---
    # JSON in the environment, e.g. POSSIBILITIES_COMPATIBLE_BACKENDS='{"vllm": "http://localhost:8000/v1"}'
    compatible_backends: dict[str, str] = {}
    # Backend name -> model ids it serves
    compatible_backend_models: dict[str, list[str]] = {}

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = {
        "env_prefix": "POSSIBILITIES_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
