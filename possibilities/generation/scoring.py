"""Confidence scoring from token log-probabilities, and candidate ranking.

A candidate's confidence is ``exp(mean(logprobs))`` clamped to
[0.01, 0.99], or ``None`` when no usable log-probabilities exist.
``None`` is a distinct "unknown" value: it ranks after every number and
is never replaced by a guessed score.
"""

from __future__ import annotations

import functools
import logging
import math
import numbers
from collections.abc import Mapping
from operator import attrgetter
from typing import Any, Callable, Iterable, Optional, TypeVar

import numpy as np

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.01
MAX_CONFIDENCE = 0.99

T = TypeVar("T")


def _extract_logprob(item: Any) -> Optional[float]:
    """Pull one finite log-probability out of a number, mapping or object."""
    if isinstance(item, bool):
        return None
    if isinstance(item, (numbers.Real, str)):
        raw = item
    elif isinstance(item, Mapping):
        raw = item.get("logprob")
    else:
        raw = getattr(item, "logprob", None)

    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def score_from_logprobs(logprobs: Optional[Iterable[Any]]) -> Optional[float]:
    """Turn per-token log-probabilities into a bounded confidence.

    Accepts plain numbers, ``{"logprob": x}`` mappings, or objects with a
    ``logprob`` attribute (SDK token objects). Unusable entries are
    excluded from the average. Never raises.

    Returns:
        Probability in [0.01, 0.99], or None if nothing usable remains.
    """
    if logprobs is None:
        return None

    try:
        items = list(logprobs)
        if not items:
            return None

        values = [v for v in (_extract_logprob(item) for item in items) if v is not None]
        skipped = len(items) - len(values)
        if skipped:
            logger.warning("Excluded %d of %d unusable logprob values", skipped, len(items))
        if not values:
            return None

        with np.errstate(over="ignore", invalid="ignore"):
            probability = np.exp(np.mean(np.asarray(values, dtype=float)))
        if not np.isfinite(probability):
            probability = MAX_CONFIDENCE if probability > 0 else MIN_CONFIDENCE
        return float(np.clip(probability, MIN_CONFIDENCE, MAX_CONFIDENCE))
    except Exception:
        logger.warning("Could not score logprobs; treating confidence as unknown", exc_info=True)
        return None


def compare_for_ranking(a: Optional[float], b: Optional[float]) -> int:
    """Comparator: higher confidence first, unknown (None) last."""
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    if a > b:
        return -1
    if a < b:
        return 1
    return 0


def rank_candidates(
    items: Iterable[T],
    key: Callable[[T], Optional[float]] = attrgetter("confidence"),
) -> list[T]:
    """Stable sort by confidence using ``compare_for_ranking``."""
    return sorted(
        items,
        key=functools.cmp_to_key(lambda x, y: compare_for_ranking(key(x), key(y))),
    )


def format_confidence(confidence: Optional[float]) -> str:
    """Render a confidence for display, e.g. ``"86%"`` or ``"N/A"``."""
    if confidence is None:
        return "N/A"
    return f"{round(confidence * 100)}%"
