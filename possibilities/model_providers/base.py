"""Abstract base class for all LLM providers."""

from __future__ import annotations

import abc
import base64
import binascii
import logging
from typing import AsyncIterator, Optional, Sequence

from possibilities.model_providers.config import (
    Attachment,
    GenerationOptions,
    Message,
    ModelInfo,
    ProviderConfig,
    ProviderResponse,
    ProviderType,
    StreamChunk,
)
from possibilities.model_providers.credentials import CredentialSource
from possibilities.model_providers.exceptions import (
    CredentialMissing,
    PossibilityError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

VALIDATION_MAX_TOKENS = 5


class BaseProvider(abc.ABC):
    """Interface that every model provider must implement.

    Public entry points (``generate``, ``stream``, ``validate_credential``)
    fetch the API key, then delegate to the provider hooks. Subclasses handle:
    1. Converting messages to provider-native format
    2. Mapping ``GenerationOptions`` to provider parameters
    3. Parsing the response into a normalized ``ProviderResponse``

    Any exception raised by a hook that is not already a ``PossibilityError``
    is wrapped as ``UpstreamError``.
    """

    provider_type: ProviderType
    validation_model_id: str = ""

    def __init__(self, config: ProviderConfig, credentials: CredentialSource):
        self.config = config
        self.credentials = credentials

    @property
    def provider_id(self) -> str:
        return self.config.provider_id

    # ── Abstract hooks ────────────────────────────────────────────────

    @abc.abstractmethod
    async def _generate(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> ProviderResponse:
        """Send one completion request and return a normalized response."""

    async def _stream(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> AsyncIterator[StreamChunk]:
        """Yield text chunks, then a final chunk carrying the response.

        Default for providers without incremental streaming: the whole text
        arrives as a single chunk.
        """
        response = await self._generate(api_key, messages, model, options)
        if response.content:
            yield StreamChunk(text=response.content)
        yield StreamChunk(response=response)

    async def _generate_once(
        self,
        api_key: str,
        messages: Sequence[Message],
        model: ModelInfo,
        options: GenerationOptions,
    ) -> ProviderResponse:
        """Generate with a key that is not the stored credential.

        Providers that cache an SDK client per key override this so the
        client built for a one-off key is closed, not cached.
        """
        return await self._generate(api_key, messages, model, options)

    # ── Public API ────────────────────────────────────────────────────

    async def generate(
        self,
        messages: Sequence[Message],
        model: ModelInfo,
        options: Optional[GenerationOptions] = None,
    ) -> ProviderResponse:
        """Generate one candidate response."""
        options = options or GenerationOptions()
        api_key = self._require_api_key()
        logger.debug(
            "%s generate model=%s temp=%s max_tokens=%s",
            self.provider_id, model.model_id, options.temperature, options.max_tokens,
        )
        try:
            return await self._generate(api_key, messages, model, options)
        except PossibilityError:
            raise
        except Exception as exc:
            logger.warning("%s API error for %s: %s", self.provider_id, model.model_id, exc)
            raise UpstreamError(self.provider_id, exc) from exc

    async def stream(
        self,
        messages: Sequence[Message],
        model: ModelInfo,
        options: Optional[GenerationOptions] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream one candidate response token by token."""
        options = options or GenerationOptions()
        api_key = self._require_api_key()
        try:
            async for chunk in self._stream(api_key, messages, model, options):
                yield chunk
        except PossibilityError:
            raise
        except Exception as exc:
            logger.warning("%s streaming error for %s: %s", self.provider_id, model.model_id, exc)
            raise UpstreamError(self.provider_id, exc) from exc

    async def validate_credential(self, api_key: Optional[str] = None) -> bool:
        """Check a key with a tiny generation call.

        Uses ``api_key`` when given (e.g. before storing it), otherwise the
        configured credential. Returns False for a missing or rejected key.
        """
        key = api_key or self._lookup_api_key()
        if not key and not self.config.requires_api_key:
            key = self.provider_id
        if not key:
            logger.info("%s validation skipped: no API key", self.provider_id)
            return False

        model_id = self.config.extra.get("validation_model") or self.validation_model_id
        if not model_id:
            logger.warning("%s has no validation model configured", self.provider_id)
            return False

        model = ModelInfo(
            model_id=model_id,
            provider=self.provider_type,
            display_name=model_id,
            backend=self.config.name if self.provider_type == ProviderType.CUSTOM else None,
        )
        messages = [Message.user("hi")]
        options = GenerationOptions(max_tokens=VALIDATION_MAX_TOKENS)
        try:
            if api_key and api_key != self._lookup_api_key():
                await self._generate_once(api_key, messages, model, options)
            else:
                await self._generate(key, messages, model, options)
        except Exception as exc:
            logger.info("%s validation failed: %s", self.provider_id, type(exc).__name__)
            return False
        logger.info("%s validation successful", self.provider_id)
        return True

    def is_available(self) -> bool:
        """True if a credential is configured (or none is needed)."""
        return not self.config.requires_api_key or bool(self._lookup_api_key())

    # ── Shared helpers ────────────────────────────────────────────────

    def _lookup_api_key(self) -> Optional[str]:
        return self.credentials.get_api_key(self.provider_id)

    def _require_api_key(self) -> str:
        key = self._lookup_api_key()
        if key:
            return key
        if not self.config.requires_api_key:
            return self.provider_id  # Placeholder; keyless local servers ignore it
        raise CredentialMissing(self.provider_id)

    def _max_tokens(self, model: ModelInfo, options: GenerationOptions) -> int:
        return options.max_tokens if options.max_tokens is not None else model.max_tokens

    @staticmethod
    def _message_text(message: Message) -> str:
        """Message content with ``text/plain`` attachments inlined."""
        parts = [message.content] if message.content else []
        for attachment in message.attachments:
            if attachment.mime_type == "text/plain":
                text = _decode_text(attachment)
                if text is not None:
                    parts.append(f"[{attachment.name}]\n{text}")
        return "\n\n".join(parts)

    @staticmethod
    def _image_attachments(message: Message) -> list[Attachment]:
        return [a for a in message.attachments if a.mime_type.startswith("image/")]


def _decode_text(attachment: Attachment) -> Optional[str]:
    try:
        return base64.b64decode(attachment.data).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        logger.warning("Skipping undecodable text attachment %s", attachment.name)
        return None
