"""Candidate generation: scoring, temperature sweeps, permutations,
cancellation and the concurrent orchestrator.
"""

from possibilities.generation.scoring import (
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    compare_for_ranking,
    format_confidence,
    rank_candidates,
    score_from_logprobs,
)
from possibilities.generation.sweep import default_token_limit, temperature_sweep
from possibilities.generation.cancellation import CancellationToken
from possibilities.generation.config import Candidate, MultiModelResult, OrchestratorConfig
from possibilities.generation.permutations import (
    DEFAULT_SYSTEM_INSTRUCTION,
    Permutation,
    PermutationGenerator,
    PermutationSettings,
    SystemInstruction,
    prepare_messages,
)
from possibilities.generation.orchestrator import GenerationOrchestrator

__all__ = [
    # Scoring
    "MIN_CONFIDENCE",
    "MAX_CONFIDENCE",
    "score_from_logprobs",
    "compare_for_ranking",
    "rank_candidates",
    "format_confidence",
    # Sweep
    "temperature_sweep",
    "default_token_limit",
    # Cancellation
    "CancellationToken",
    # Config / results
    "OrchestratorConfig",
    "Candidate",
    "MultiModelResult",
    # Permutations
    "SystemInstruction",
    "DEFAULT_SYSTEM_INSTRUCTION",
    "PermutationSettings",
    "Permutation",
    "PermutationGenerator",
    "prepare_messages",
    # Orchestrator
    "GenerationOrchestrator",
]
