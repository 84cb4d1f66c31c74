"""Exception hierarchy for provider lookup, generation and streaming.

Lookup errors (``ModelNotFound``, ``ProviderNotFound``) and
``CredentialMissing`` propagate unchanged through the orchestrator.
Everything a provider SDK or the network throws is wrapped as
``UpstreamError`` by the adapter, then as ``GenerationFailed`` by the
orchestrator. None of these are retried inside the engine.
"""

from typing import Optional


class PossibilityError(Exception):
    """Base exception for the possibilities engine."""


class ModelNotFound(PossibilityError):
    """Raised when a model id is not in the catalog."""

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Model not found: {model_id}")


class ProviderNotFound(PossibilityError):
    """Raised when a provider id is unknown or not configured."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Provider not found: {provider_id}")


class CredentialMissing(PossibilityError):
    """Raised when no API key is configured for a provider."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"{provider_id} API key not configured")


class UpstreamError(PossibilityError):
    """A provider SDK or transport failure (rate limit, auth, timeout, ...)."""

    def __init__(self, provider: str, cause: BaseException):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider} API error: {_describe(cause)}")


class GenerationFailed(PossibilityError):
    """Raised by the orchestrator when a generation could not be completed."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.provider = provider
        self.cause = cause
        super().__init__(message)


class GenerationCancelled(PossibilityError):
    """Raised when a request's cancellation token fires (explicitly or by deadline)."""

    def __init__(self, message: str = "Generation cancelled"):
        super().__init__(message)


class StreamParseError(PossibilityError):
    """A single malformed line in an event stream."""

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed stream line ({reason}): {line[:100]}")


def _describe(cause: BaseException) -> str:
    text = str(cause)
    return text if text else type(cause).__name__
