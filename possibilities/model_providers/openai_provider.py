"""OpenAI (GPT) provider implementation."""

from __future__ import annotations

from typing import AsyncIterator, Optional, Sequence

from possibilities.generation.scoring import score_from_logprobs
from possibilities.model_providers.base import BaseProvider
from possibilities.model_providers.config import (
    TOKEN_LIMITS,
    GenerationOptions,
    Message,
    ModelInfo,
    ProviderConfig,
    ProviderResponse,
    ProviderType,
    StreamChunk,
    TokenUsage,
)
from possibilities.model_providers.credentials import CredentialSource

DEFAULT_TEMPERATURE = 0.7


class OpenAIProvider(BaseProvider):
    """Provider for OpenAI GPT and o-series models.

    Also serves as base class for OpenAI-compatible APIs (Mistral,
    Together, xAI, Ollama, custom backends). Requests token logprobs for
    models that support confidence scoring.
    """

    provider_type = ProviderType.OPENAI
    validation_model_id = "gpt-4o-mini"
    supports_stream_usage = True

    def __init__(self, config: ProviderConfig, credentials: CredentialSource):
        super().__init__(config, credentials)
        self.base_url: Optional[str] = config.base_url
        self._client = None
        self._client_key: Optional[str] = None

    def _new_client(self, api_key: str):
        import openai
        kwargs = {"api_key": api_key, "timeout": self.config.timeout_seconds}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        return openai.AsyncOpenAI(**kwargs)

    def _get_client(self, api_key: str):
        """Client for the stored key, rebuilt when the key changes."""
        if self._client is None or self._client_key != api_key:
            self._client = self._new_client(api_key)
            self._client_key = api_key
        return self._client

    def _convert_messages(self, messages: Sequence[Message]) -> list[dict]:
        """Convert messages to OpenAI chat format.

        Image attachments become ``image_url`` content parts with data URIs.
        """
        native = []
        for msg in messages:
            text = self._message_text(msg)
            images = self._image_attachments(msg)
            if images and msg.role.value == "user":
                content = [{"type": "text", "text": text}]
                for image in images:
                    content.append({
                        "type": "image_url",
                        "image_url": {"url": f"data:{image.mime_type};base64,{image.data}"},
                    })
                native.append({"role": msg.role.value, "content": content})
            else:
                native.append({"role": msg.role.value, "content": text})
        return native

    def _request_kwargs(
        self,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> dict:
        kwargs = {
            "model": model.model_id,
            "messages": self._convert_messages(messages),
        }

        # Reasoning models have a fixed temperature and reject sampling params
        if model.is_reasoning_model:
            floor = TOKEN_LIMITS["possibility_reasoning"]
            kwargs["max_completion_tokens"] = max(options.max_tokens or floor, floor)
            return kwargs

        kwargs["max_tokens"] = self._max_tokens(model, options)
        kwargs["temperature"] = (
            options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE
        )
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        if options.frequency_penalty is not None:
            kwargs["frequency_penalty"] = options.frequency_penalty
        if options.presence_penalty is not None:
            kwargs["presence_penalty"] = options.presence_penalty
        if options.stop_sequences:
            kwargs["stop"] = list(options.stop_sequences)
        if model.supports_confidence_score:
            kwargs["logprobs"] = True
        return kwargs

    async def _generate(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> ProviderResponse:
        return await self._complete(self._get_client(api_key), messages, model, options)

    async def _generate_once(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> ProviderResponse:
        client = self._new_client(api_key)
        try:
            return await self._complete(client, messages, model, options)
        finally:
            await client.close()

    async def _complete(
        self,
        client,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> ProviderResponse:
        response = await client.chat.completions.create(
            **self._request_kwargs(messages, model, options)
        )
        choice = response.choices[0]
        logprobs = _choice_logprobs(choice)

        return ProviderResponse(
            content=choice.message.content or "",
            confidence=score_from_logprobs(logprobs),
            finish_reason=choice.finish_reason or "stop",
            token_usage=_usage(getattr(response, "usage", None)),
            logprobs=logprobs,
            raw_response=response,
        )

    async def _stream(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> AsyncIterator[StreamChunk]:
        # Reasoning models: one whole-text chunk instead of token streaming
        if model.is_reasoning_model:
            async for chunk in super()._stream(api_key, messages, model, options):
                yield chunk
            return

        client = self._get_client(api_key)
        kwargs = self._request_kwargs(messages, model, options)
        kwargs["stream"] = True
        if self.supports_stream_usage:
            kwargs["stream_options"] = {"include_usage": True}

        stream = await client.chat.completions.create(**kwargs)

        parts: list[str] = []
        logprobs: list[float] = []
        finish_reason = "stop"
        usage: Optional[TokenUsage] = None

        async for event in stream:
            if getattr(event, "usage", None):
                usage = _usage(event.usage)
            if not event.choices:
                continue
            choice = event.choices[0]
            text = getattr(choice.delta, "content", None)
            if text:
                parts.append(text)
                yield StreamChunk(text=text)
            logprobs.extend(_choice_logprobs(choice) or [])
            if choice.finish_reason:
                finish_reason = choice.finish_reason

        yield StreamChunk(response=ProviderResponse(
            content="".join(parts),
            confidence=score_from_logprobs(logprobs),
            finish_reason=finish_reason,
            token_usage=usage,
            logprobs=logprobs or None,
        ))


def _choice_logprobs(choice) -> Optional[list[float]]:
    """Token logprobs from a choice (or stream delta choice), if present."""
    logprobs = getattr(choice, "logprobs", None)
    content = getattr(logprobs, "content", None) if logprobs is not None else None
    if not content:
        return None
    values = [tok.logprob for tok in content if getattr(tok, "logprob", None) is not None]
    return values or None


def _usage(usage) -> Optional[TokenUsage]:
    if not usage:
        return None
    prompt = getattr(usage, "prompt_tokens", 0) or 0
    completion = getattr(usage, "completion_tokens", 0) or 0
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=getattr(usage, "total_tokens", None) or prompt + completion,
    )
