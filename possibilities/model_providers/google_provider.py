"""Google Gemini provider implementation."""

from __future__ import annotations

import base64
import logging
from typing import AsyncIterator, Optional, Sequence

from possibilities.generation.scoring import score_from_logprobs
from possibilities.model_providers.base import BaseProvider
from possibilities.model_providers.config import (
    GenerationOptions,
    Message,
    MessageRole,
    ModelInfo,
    ProviderResponse,
    ProviderType,
    StreamChunk,
    TokenUsage,
)

logger = logging.getLogger(__name__)


class GoogleProvider(BaseProvider):
    """Provider for Google Gemini models (gemini-2.0-flash, gemini-1.5-pro).

    Uses the google-generativeai SDK. Gemini reports an average token
    log-probability per candidate (``avg_logprobs``) for some models; it is
    used as the confidence when the model is flagged as supporting it.
    """

    provider_type = ProviderType.GOOGLE
    validation_model_id = "gemini-1.5-flash"

    def _get_model(self, api_key: str, model: ModelInfo, system_instruction: Optional[str]):
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        return genai.GenerativeModel(
            model_name=model.model_id,
            system_instruction=system_instruction or None,
        )

    def _convert_messages(self, messages: Sequence[Message]) -> tuple[str, list[dict]]:
        """Convert messages to Gemini Content dicts; system turns become the instruction."""
        system_parts = []
        contents = []
        for msg in messages:
            text = self._message_text(msg)
            if msg.role == MessageRole.SYSTEM:
                if text:
                    system_parts.append(text)
                continue

            parts: list = [{"text": text}] if text else []
            for image in self._image_attachments(msg):
                parts.append({
                    "inline_data": {
                        "mime_type": image.mime_type,
                        "data": base64.b64decode(image.data),
                    }
                })
            if not parts:
                continue
            role = "model" if msg.role == MessageRole.ASSISTANT else "user"
            contents.append({"role": role, "parts": parts})
        return "\n\n".join(system_parts), contents

    def _generation_config(self, model: ModelInfo, options: GenerationOptions):
        import google.generativeai as genai

        kwargs = {"max_output_tokens": self._max_tokens(model, options)}
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        if options.top_k is not None:
            kwargs["top_k"] = options.top_k
        if options.stop_sequences:
            kwargs["stop_sequences"] = list(options.stop_sequences)
        return genai.types.GenerationConfig(**kwargs)

    async def _generate(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> ProviderResponse:
        system, contents = self._convert_messages(messages)
        gen_model = self._get_model(api_key, model, system)
        response = await gen_model.generate_content_async(
            contents,
            generation_config=self._generation_config(model, options),
        )

        candidate = response.candidates[0] if response.candidates else None
        return ProviderResponse(
            content=_candidate_text(candidate),
            confidence=_confidence(candidate, model),
            finish_reason=_finish_reason(candidate),
            token_usage=_usage(getattr(response, "usage_metadata", None)),
            raw_response=response,
        )

    async def _stream(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> AsyncIterator[StreamChunk]:
        system, contents = self._convert_messages(messages)
        gen_model = self._get_model(api_key, model, system)
        response = await gen_model.generate_content_async(
            contents,
            generation_config=self._generation_config(model, options),
            stream=True,
        )

        parts: list[str] = []
        last_candidate = None
        usage = None
        async for chunk in response:
            candidate = chunk.candidates[0] if chunk.candidates else None
            if candidate is not None:
                last_candidate = candidate
            text = _candidate_text(candidate)
            if text:
                parts.append(text)
                yield StreamChunk(text=text)
            usage = _usage(getattr(chunk, "usage_metadata", None)) or usage

        yield StreamChunk(response=ProviderResponse(
            content="".join(parts),
            confidence=_confidence(last_candidate, model),
            finish_reason=_finish_reason(last_candidate),
            token_usage=usage,
        ))


def _candidate_text(candidate) -> str:
    if candidate is None:
        return ""
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []
    return "".join(getattr(part, "text", "") or "" for part in parts)


def _confidence(candidate, model: ModelInfo) -> Optional[float]:
    # avg_logprobs defaults to 0.0 when absent, which would read as certainty
    if candidate is None or not model.supports_confidence_score:
        return None
    avg = getattr(candidate, "avg_logprobs", None)
    if not avg:
        return None
    return score_from_logprobs([avg])


def _finish_reason(candidate) -> str:
    reason = getattr(candidate, "finish_reason", None) if candidate is not None else None
    if reason is None:
        return "stop"
    name = getattr(reason, "name", None) or str(reason)
    return name.lower()


def _usage(metadata) -> Optional[TokenUsage]:
    if not metadata:
        return None
    prompt = getattr(metadata, "prompt_token_count", 0) or 0
    completion = getattr(metadata, "candidates_token_count", 0) or 0
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=getattr(metadata, "total_token_count", None) or prompt + completion,
    )
