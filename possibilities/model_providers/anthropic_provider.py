"""Anthropic (Claude) provider implementation."""

from __future__ import annotations

from typing import AsyncIterator, Optional, Sequence

from possibilities.model_providers.base import BaseProvider
from possibilities.model_providers.config import (
    GenerationOptions,
    Message,
    MessageRole,
    ModelInfo,
    ProviderConfig,
    ProviderResponse,
    ProviderType,
    StreamChunk,
    TokenUsage,
)
from possibilities.model_providers.credentials import CredentialSource


class AnthropicProvider(BaseProvider):
    """Provider for Anthropic Claude models.

    The Messages API exposes no token log-probabilities, so every
    response carries an unknown (``None``) confidence.
    """

    provider_type = ProviderType.ANTHROPIC
    validation_model_id = "claude-3-5-haiku-20241022"

    def __init__(self, config: ProviderConfig, credentials: CredentialSource):
        super().__init__(config, credentials)
        self._client = None
        self._client_key: Optional[str] = None

    def _new_client(self, api_key: str):
        import anthropic
        kwargs = {"api_key": api_key, "timeout": self.config.timeout_seconds}
        if self.config.base_url:
            kwargs["base_url"] = self.config.base_url
        return anthropic.AsyncAnthropic(**kwargs)

    def _get_client(self, api_key: str):
        """Client for the stored key, rebuilt when the key changes."""
        if self._client is None or self._client_key != api_key:
            self._client = self._new_client(api_key)
            self._client_key = api_key
        return self._client

    def _convert_messages(self, messages: Sequence[Message]) -> tuple[str, list[dict]]:
        """Split out the system prompt and convert the rest to Claude format."""
        system_parts = []
        native = []
        for msg in messages:
            text = self._message_text(msg)
            if msg.role == MessageRole.SYSTEM:
                if text:
                    system_parts.append(text)
                continue

            images = self._image_attachments(msg)
            if images and msg.role == MessageRole.USER:
                content = [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": image.mime_type,
                            "data": image.data,
                        },
                    }
                    for image in images
                ]
                content.append({"type": "text", "text": text})
                native.append({"role": msg.role.value, "content": content})
            else:
                native.append({"role": msg.role.value, "content": text})
        return "\n\n".join(system_parts), native

    def _request_kwargs(
        self,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> dict:
        system, native = self._convert_messages(messages)
        kwargs = {
            "model": model.model_id,
            "max_tokens": self._max_tokens(model, options),
            "messages": native,
        }
        if system:
            kwargs["system"] = system
        if options.temperature is not None:
            kwargs["temperature"] = min(options.temperature, 1.0)  # Claude caps at 1.0
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        if options.top_k is not None:
            kwargs["top_k"] = options.top_k
        if options.stop_sequences:
            kwargs["stop_sequences"] = list(options.stop_sequences)
        return kwargs

    async def _generate(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> ProviderResponse:
        client = self._get_client(api_key)
        response = await client.messages.create(
            **self._request_kwargs(messages, model, options)
        )
        return _to_response(response)

    async def _generate_once(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> ProviderResponse:
        client = self._new_client(api_key)
        try:
            response = await client.messages.create(
                **self._request_kwargs(messages, model, options)
            )
        finally:
            await client.close()
        return _to_response(response)

    async def _stream(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> AsyncIterator[StreamChunk]:
        client = self._get_client(api_key)
        async with client.messages.stream(
            **self._request_kwargs(messages, model, options)
        ) as stream:
            async for text in stream.text_stream:
                if text:
                    yield StreamChunk(text=text)
            final = await stream.get_final_message()
        yield StreamChunk(response=_to_response(final))


def _to_response(message) -> ProviderResponse:
    text_parts = [
        block.text for block in message.content
        if getattr(block, "type", None) == "text"
    ]
    return ProviderResponse(
        content="".join(text_parts),
        confidence=None,
        finish_reason=message.stop_reason or "end_turn",
        token_usage=_usage(getattr(message, "usage", None)),
        raw_response=message,
    )


def _usage(usage) -> Optional[TokenUsage]:
    if not usage:
        return None
    prompt = getattr(usage, "input_tokens", 0) or 0
    completion = getattr(usage, "output_tokens", 0) or 0
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=prompt + completion,
    )
