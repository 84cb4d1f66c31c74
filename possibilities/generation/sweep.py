"""Temperature sweeps and default token limits."""

from typing import Optional

from possibilities.model_providers.config import TOKEN_LIMITS, ModelInfo

BASE_TEMPERATURE = 0.7
MAX_TEMPERATURE = 1.0

# Hand-tuned sweeps for the common variation counts
_SWEEPS: dict[int, tuple[float, ...]] = {
    1: (0.7,),
    2: (0.7, 0.9),
    3: (0.7, 0.8, 0.9),
    4: (0.7, 0.8, 0.9, 1.0),
    5: (0.7, 0.75, 0.8, 0.9, 1.0),
}


def temperature_sweep(count: int) -> list[float]:
    """Return ``count`` non-decreasing temperatures starting at 0.7.

    Counts above five are spread evenly over [0.7, 1.0].

    Raises:
        ValueError: If ``count`` is less than 1.
    """
    if count < 1:
        raise ValueError(f"Variation count must be at least 1, got {count}")
    if count in _SWEEPS:
        return list(_SWEEPS[count])
    span = MAX_TEMPERATURE - BASE_TEMPERATURE
    return [round(BASE_TEMPERATURE + span * i / (count - 1), 4) for i in range(count)]


def default_token_limit(
    model: ModelInfo,
    possibility_tokens: Optional[int] = None,
    reasoning_tokens: Optional[int] = None,
) -> int:
    """Token budget for one possibility; reasoning models get a larger floor."""
    limit = possibility_tokens or TOKEN_LIMITS["possibility_default"]
    if model.is_reasoning_model:
        return max(limit, reasoning_tokens or TOKEN_LIMITS["possibility_reasoning"])
    return limit
