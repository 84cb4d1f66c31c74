"""Permutations of providers × models × temperatures × system instructions.

Each permutation becomes one streamed possibility. Ids are deterministic
so a client can correlate a possibility across retries, e.g.::

    openai_gpt-4o-mini_temp0.7_inst-default
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from possibilities.model_providers.config import Message, ModelCatalog

logger = logging.getLogger(__name__)

UNKNOWN_PROVIDER = "unknown"

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


@dataclass(frozen=True)
class SystemInstruction:
    """A named system instruction; one permutation is made per instruction."""

    id: str
    name: str
    content: str
    enabled: bool = True


DEFAULT_SYSTEM_INSTRUCTION = SystemInstruction(
    id="default",
    name="default",
    content=(
        "You are a helpful, creative, and insightful AI assistant. You provide "
        "clear, accurate, and thoughtful responses while considering multiple "
        "perspectives."
    ),
)


@dataclass
class PermutationSettings:
    """Which providers, models, temperatures and instructions to combine.

    When ``enabled_models`` is set, only those models are used (still
    filtered by ``enabled_providers``); otherwise every catalog model of
    each enabled provider is used.
    """

    enabled_providers: list[str] = field(default_factory=list)
    temperatures: list[float] = field(default_factory=lambda: [0.7])
    system_instructions: list[SystemInstruction] = field(default_factory=list)
    enabled_models: Optional[list[str]] = None
    system_prompt: Optional[str] = None

    def active_instructions(self) -> list[SystemInstruction]:
        enabled = [i for i in self.system_instructions if i.enabled]
        return enabled or [DEFAULT_SYSTEM_INSTRUCTION]


@dataclass(frozen=True)
class Permutation:
    id: str
    provider: str
    model: str
    temperature: float
    system_instruction: Optional[SystemInstruction] = None
    system_prompt: Optional[str] = None


def permutation_id(
    provider: str,
    model_id: str,
    temperature: float,
    instruction: Optional[SystemInstruction],
) -> str:
    parts = [
        provider,
        _NON_ALNUM.sub("-", model_id),
        f"temp{temperature:g}",
        f"inst-{instruction.id}" if instruction else "no-inst",
    ]
    return "_".join(parts)


class PermutationGenerator:
    """Expands ``PermutationSettings`` into concrete permutations."""

    def __init__(self, catalog: ModelCatalog):
        self.catalog = catalog

    def _models(self, settings: PermutationSettings) -> list[tuple[str, str]]:
        """(provider_id, model_id) pairs in a stable order."""
        if settings.enabled_models is None:
            return [
                (provider, model.model_id)
                for provider in settings.enabled_providers
                for model in self.catalog.for_provider(provider)
            ]

        pairs = []
        providers = set(settings.enabled_providers)
        for model_id in settings.enabled_models:
            info = self.catalog.find(model_id)
            if info is None:
                # Kept so the stream can report it as an error
                logger.warning("Enabled model %s is not in the catalog", model_id)
                pairs.append((UNKNOWN_PROVIDER, model_id))
            elif not providers or info.provider_id in providers:
                pairs.append((info.provider_id, model_id))
        return pairs

    def generate(self, settings: PermutationSettings) -> list[Permutation]:
        instructions = settings.active_instructions()
        return [
            Permutation(
                id=permutation_id(provider, model_id, temperature, instruction),
                provider=provider,
                model=model_id,
                temperature=temperature,
                system_instruction=instruction,
                system_prompt=settings.system_prompt,
            )
            for provider, model_id in self._models(settings)
            for temperature in settings.temperatures
            for instruction in instructions
        ]

    def count(self, settings: PermutationSettings) -> int:
        """Number of permutations ``generate`` would produce."""
        return (
            len(self._models(settings))
            * len(settings.temperatures)
            * len(settings.active_instructions())
        )


def prepare_messages(
    messages: Sequence[Message],
    system_prompt: Optional[str] = None,
    system_instruction: Optional[SystemInstruction] = None,
) -> list[Message]:
    """Prepend one system message built from the prompt and instruction."""
    parts = [p for p in (system_prompt, system_instruction and system_instruction.content) if p]
    if not parts:
        return list(messages)
    return [Message.system("\n\n".join(parts), id="system"), *messages]
