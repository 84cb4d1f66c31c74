"""Tests for temperature sweeps, token limits and permutation expansion."""

import pytest

from possibilities.generation.permutations import (
    DEFAULT_SYSTEM_INSTRUCTION,
    UNKNOWN_PROVIDER,
    PermutationGenerator,
    PermutationSettings,
    SystemInstruction,
    permutation_id,
    prepare_messages,
)
from possibilities.generation.sweep import default_token_limit, temperature_sweep
from possibilities.model_providers.config import (
    MessageRole,
    Message,
    ModelCatalog,
    ModelInfo,
    ProviderType,
)


# ═══════════════════════════════════════════════════════════════════════
# Test Temperature Sweep
# ═══════════════════════════════════════════════════════════════════════


class TestTemperatureSweep:
    """Test the variation temperature sweep."""

    @pytest.mark.parametrize("count", range(1, 11))
    def test_length_matches_count(self, count):
        assert len(temperature_sweep(count)) == count

    @pytest.mark.parametrize("count", range(1, 11))
    def test_non_decreasing_from_base(self, count):
        temps = temperature_sweep(count)
        assert temps[0] == 0.7
        assert temps == sorted(temps)
        assert all(0.7 <= t <= 1.0 for t in temps)

    def test_known_counts(self):
        assert temperature_sweep(1) == [0.7]
        assert temperature_sweep(3) == [0.7, 0.8, 0.9]
        assert temperature_sweep(5) == [0.7, 0.75, 0.8, 0.9, 1.0]

    def test_large_count_spread_evenly(self):
        temps = temperature_sweep(6)
        assert temps == pytest.approx([0.7, 0.76, 0.82, 0.88, 0.94, 1.0])

    @pytest.mark.parametrize("count", [0, -1])
    def test_invalid_count(self, count):
        with pytest.raises(ValueError):
            temperature_sweep(count)

    def test_returns_fresh_list(self):
        temps = temperature_sweep(2)
        temps.append(5.0)
        assert temperature_sweep(2) == [0.7, 0.9]


# ═══════════════════════════════════════════════════════════════════════
# Test Default Token Limit
# ═══════════════════════════════════════════════════════════════════════


class TestDefaultTokenLimit:

    def _model(self, reasoning=False):
        return ModelInfo(
            model_id="m", provider=ProviderType.OPENAI, display_name="M",
            is_reasoning_model=reasoning,
        )

    def test_standard_model(self):
        assert default_token_limit(self._model()) == 100

    def test_reasoning_model_floor(self):
        assert default_token_limit(self._model(reasoning=True)) == 1500

    def test_configured_limits(self):
        assert default_token_limit(self._model(), possibility_tokens=250) == 250
        assert default_token_limit(self._model(True), 250, reasoning_tokens=2000) == 2000
        assert default_token_limit(self._model(True), 3000, reasoning_tokens=2000) == 3000


# ═══════════════════════════════════════════════════════════════════════
# Test Permutation Ids
# ═══════════════════════════════════════════════════════════════════════


class TestPermutationId:

    def test_format(self):
        pid = permutation_id("openai", "gpt-4o-mini", 0.7, DEFAULT_SYSTEM_INSTRUCTION)
        assert pid == "openai_gpt-4o-mini_temp0.7_inst-default"

    def test_non_alphanumerics_replaced(self):
        pid = permutation_id(
            "together", "meta-llama/Meta-Llama-3.1-8B-Instruct-Turbo", 1.0, None
        )
        assert pid == "together_meta-llama-Meta-Llama-3-1-8B-Instruct-Turbo_temp1_no-inst"


# ═══════════════════════════════════════════════════════════════════════
# Test Permutation Generator
# ═══════════════════════════════════════════════════════════════════════


class TestPermutationGenerator:

    @pytest.fixture
    def generator(self):
        return PermutationGenerator(ModelCatalog())

    def test_enabled_models_cross_product(self, generator):
        settings = PermutationSettings(
            enabled_providers=["openai", "anthropic"],
            enabled_models=["gpt-4o-mini", "claude-3-5-haiku-20241022"],
            temperatures=[0.7, 0.9],
            system_instructions=[
                SystemInstruction(id="poet", name="Poet", content="Write verse."),
                SystemInstruction(id="terse", name="Terse", content="Be brief."),
            ],
        )
        perms = generator.generate(settings)
        assert len(perms) == 8 == generator.count(settings)
        assert len({p.id for p in perms}) == 8
        assert perms[0].provider == "openai"
        assert perms[0].id == "openai_gpt-4o-mini_temp0.7_inst-poet"

    def test_provider_filter_applies_to_enabled_models(self, generator):
        settings = PermutationSettings(
            enabled_providers=["openai"],
            enabled_models=["gpt-4o-mini", "claude-3-5-haiku-20241022"],
        )
        assert [p.model for p in generator.generate(settings)] == ["gpt-4o-mini"]

    def test_all_models_of_provider(self, generator):
        settings = PermutationSettings(enabled_providers=["anthropic"])
        models = {p.model for p in generator.generate(settings)}
        assert models == {m.model_id for m in ModelCatalog().for_provider("anthropic")}

    def test_default_instruction_when_none_enabled(self, generator):
        settings = PermutationSettings(
            enabled_providers=["openai"],
            enabled_models=["gpt-4o"],
            system_instructions=[SystemInstruction(id="x", name="X", content="x", enabled=False)],
        )
        (perm,) = generator.generate(settings)
        assert perm.system_instruction == DEFAULT_SYSTEM_INSTRUCTION

    def test_unknown_model_kept(self, generator):
        settings = PermutationSettings(enabled_providers=["openai"], enabled_models=["nope-9"])
        (perm,) = generator.generate(settings)
        assert perm.provider == UNKNOWN_PROVIDER
        assert perm.model == "nope-9"

    def test_system_prompt_carried(self, generator):
        settings = PermutationSettings(
            enabled_providers=["openai"], enabled_models=["gpt-4o"], system_prompt="Be kind."
        )
        assert generator.generate(settings)[0].system_prompt == "Be kind."

    def test_nothing_enabled(self, generator):
        settings = PermutationSettings()
        assert generator.generate(settings) == []
        assert generator.count(settings) == 0


# ═══════════════════════════════════════════════════════════════════════
# Test Prepare Messages
# ═══════════════════════════════════════════════════════════════════════


class TestPrepareMessages:

    def test_prompt_and_instruction_joined(self):
        messages = [Message.user("Hello")]
        instruction = SystemInstruction(id="terse", name="Terse", content="Be brief.")
        prepared = prepare_messages(messages, "You are a poet.", instruction)
        assert len(prepared) == 2
        assert prepared[0].role == MessageRole.SYSTEM
        assert prepared[0].id == "system"
        assert prepared[0].content == "You are a poet.\n\nBe brief."
        assert prepared[1] is messages[0]

    def test_instruction_only(self):
        prepared = prepare_messages([Message.user("Hi")], None, DEFAULT_SYSTEM_INSTRUCTION)
        assert prepared[0].content == DEFAULT_SYSTEM_INSTRUCTION.content

    def test_nothing_to_prepend(self):
        messages = [Message.user("Hi")]
        prepared = prepare_messages(messages)
        assert prepared == messages
        assert prepared is not messages
