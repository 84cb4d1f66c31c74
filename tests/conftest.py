"""Pytest configuration and shared fixtures."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from possibilities.generation.config import OrchestratorConfig  # noqa: E402
from possibilities.generation.orchestrator import GenerationOrchestrator  # noqa: E402
from possibilities.model_providers.base import BaseProvider  # noqa: E402
from possibilities.model_providers.config import (  # noqa: E402
    TEXT_AND_IMAGES,
    ModelCatalog,
    ModelInfo,
    ProviderConfig,
    ProviderResponse,
    ProviderType,
    StreamChunk,
)
from possibilities.model_providers.credentials import StaticCredentialSource  # noqa: E402
from possibilities.model_providers.registry import ProviderRegistry  # noqa: E402


class FakeProvider(BaseProvider):
    """Scriptable in-memory provider.

    ``responses`` maps temperature -> ProviderResponse or exception; any
    other temperature gets ``default``. ``chunks`` (if set) are streamed
    one by one before the final response.
    """

    provider_type = ProviderType.CUSTOM
    validation_model_id = "alpha-1"

    def __init__(
        self,
        name: str,
        responses: Optional[dict] = None,
        default=None,
        delay: float = 0.0,
        delays: Optional[dict] = None,
        chunks: Optional[list[str]] = None,
        credentials=None,
    ):
        config = ProviderConfig(provider=ProviderType.CUSTOM, name=name, base_url="http://fake")
        super().__init__(config, credentials or StaticCredentialSource({name: f"{name}-key"}))
        self.responses = responses or {}
        self.default = default if default is not None else ProviderResponse(
            content=f"{name} says hi", confidence=0.5
        )
        self.delay = delay
        self.delays = delays or {}
        self.chunks = chunks
        self.calls = []
        self.cancelled = 0

    def _outcome(self, options):
        outcome = self.responses.get(options.temperature, self.default)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def _generate(self, api_key, messages, model, options):
        self.calls.append({"api_key": api_key, "messages": messages, "model": model, "options": options})
        delay = self.delays.get(options.temperature, self.delay)
        try:
            if delay:
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return self._outcome(options)

    async def _stream(self, api_key, messages, model, options):
        if self.chunks is None:
            async for chunk in super()._stream(api_key, messages, model, options):
                yield chunk
            return
        self.calls.append({"api_key": api_key, "messages": messages, "model": model, "options": options})
        for text in self.chunks:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield StreamChunk(text=text)
        response = self._outcome(options)
        yield StreamChunk(response=response)


def fake_model(model_id: str, backend: str, **kwargs) -> ModelInfo:
    return ModelInfo(
        model_id=model_id,
        provider=ProviderType.CUSTOM,
        display_name=model_id.title(),
        backend=backend,
        **kwargs,
    )


@pytest.fixture
def fake_catalog():
    return ModelCatalog([
        fake_model("alpha-1", "alpha", supports_confidence_score=True),
        fake_model("alpha-vision", "alpha", accepted_content_types=TEXT_AND_IMAGES),
        fake_model("beta-1", "beta"),
    ])


@pytest.fixture
def alpha():
    return FakeProvider("alpha")


@pytest.fixture
def beta():
    return FakeProvider("beta")


@pytest.fixture
def fake_registry(alpha, beta):
    registry = ProviderRegistry(StaticCredentialSource())
    registry.register(alpha)
    registry.register(beta)
    return registry


@pytest.fixture
def orchestrator(fake_catalog, fake_registry):
    return GenerationOrchestrator(
        fake_catalog,
        fake_registry,
        OrchestratorConfig(provider_timeout_seconds=5.0),
    )
