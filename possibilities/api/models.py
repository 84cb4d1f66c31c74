"""Pydantic request/response models for the possibilities API.

Field names follow the JSON API (camelCase aliases); Python code may use
either the alias or the snake_case name.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from possibilities.generation.permutations import (
    Permutation,
    PermutationSettings,
    SystemInstruction,
)
from possibilities.model_providers.config import Attachment, Message, MessageRole, ModelInfo


class APIModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ── Requests ─────────────────────────────────────────────────────────


class AttachmentIn(APIModel):
    name: str
    mime_type: str = Field(alias="mimeType")
    data: str  # base64


class MessageIn(APIModel):
    id: Optional[str] = None
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: Optional[datetime] = None
    attachments: list[AttachmentIn] = Field(default_factory=list)

    def to_message(self) -> Message:
        kwargs = {}
        if self.id:
            kwargs["id"] = self.id
        if self.timestamp:
            kwargs["timestamp"] = self.timestamp
        return Message(
            role=MessageRole(self.role),
            content=self.content,
            attachments=tuple(
                Attachment(name=a.name, mime_type=a.mime_type, data=a.data)
                for a in self.attachments
            ),
            **kwargs,
        )


class SystemInstructionIn(APIModel):
    id: str
    name: str
    content: str
    enabled: bool = True

    def to_instruction(self) -> SystemInstruction:
        return SystemInstruction(
            id=self.id, name=self.name, content=self.content, enabled=self.enabled
        )


class CompletionSettings(APIModel):
    enabled_providers: list[str] = Field(alias="enabledProviders")
    enabled_models: Optional[list[str]] = Field(default=None, alias="enabledModels")
    temperatures: list[float] = Field(default_factory=lambda: [0.7])
    system_instructions: list[SystemInstructionIn] = Field(
        default_factory=list, alias="systemInstructions"
    )
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")

    @model_validator(mode="after")
    def _check_temperatures(self) -> "CompletionSettings":
        for t in self.temperatures:
            if not 0.0 <= t <= 2.0:
                raise ValueError(f"temperature {t} is outside [0, 2]")
        return self

    def to_permutation_settings(self) -> PermutationSettings:
        return PermutationSettings(
            enabled_providers=list(self.enabled_providers),
            temperatures=list(self.temperatures),
            system_instructions=[i.to_instruction() for i in self.system_instructions],
            enabled_models=list(self.enabled_models) if self.enabled_models is not None else None,
            system_prompt=self.system_prompt,
        )


class CompletionOptions(APIModel):
    max_tokens: Optional[int] = Field(default=None, alias="maxTokens", ge=1)
    stream: bool = True
    mode: Literal["possibilities", "continuation"] = "possibilities"
    continuation_id: Optional[str] = Field(default=None, alias="continuationId")
    deadline_seconds: Optional[float] = Field(default=None, alias="deadlineSeconds", gt=0)

    @model_validator(mode="after")
    def _check_continuation(self) -> "CompletionOptions":
        if self.mode == "continuation" and not self.continuation_id:
            raise ValueError("continuationId is required in continuation mode")
        return self


class ChatCompletionRequest(APIModel):
    messages: list[MessageIn] = Field(min_length=1)
    settings: CompletionSettings
    options: CompletionOptions = Field(default_factory=CompletionOptions)

    def to_messages(self) -> list[Message]:
        return [m.to_message() for m in self.messages]


class PermutationIn(APIModel):
    id: str
    provider: str
    model: str
    temperature: float = Field(ge=0.0, le=2.0)
    system_instruction: Optional[SystemInstructionIn] = Field(
        default=None, alias="systemInstruction"
    )
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")

    def to_permutation(self) -> Permutation:
        return Permutation(
            id=self.id,
            provider=self.provider,
            model=self.model,
            temperature=self.temperature,
            system_instruction=(
                self.system_instruction.to_instruction() if self.system_instruction else None
            ),
            system_prompt=self.system_prompt,
        )


class SinglePossibilityOptions(APIModel):
    max_tokens: int = Field(default=100, alias="maxTokens", ge=1)
    stream: bool = True
    deadline_seconds: Optional[float] = Field(default=None, alias="deadlineSeconds", gt=0)


class SinglePossibilityRequest(APIModel):
    messages: list[MessageIn] = Field(min_length=1)
    permutation: PermutationIn
    options: SinglePossibilityOptions = Field(default_factory=SinglePossibilityOptions)


class ValidateKeyRequest(APIModel):
    api_key: Optional[str] = Field(default=None, alias="apiKey")


# ── Responses ────────────────────────────────────────────────────────


class ModelResponse(APIModel):
    id: str
    name: str
    provider: str
    max_tokens: int = Field(alias="maxTokens")
    supports_confidence: bool = Field(alias="supportsConfidence")
    is_reasoning_model: bool = Field(alias="isReasoningModel")
    priority: str
    accepted_content_types: list[str] = Field(alias="acceptedContentTypes")

    @classmethod
    def from_info(cls, info: ModelInfo) -> "ModelResponse":
        return cls(
            id=info.model_id,
            name=info.display_name,
            provider=info.provider_id,
            max_tokens=info.max_tokens,
            supports_confidence=info.supports_confidence_score,
            is_reasoning_model=info.is_reasoning_model,
            priority=info.priority.value,
            accepted_content_types=list(info.accepted_content_types),
        )


class ModelListResponse(APIModel):
    models: list[ModelResponse]
    count: int


class ValidateKeyResponse(APIModel):
    provider: str
    valid: bool


class HealthResponse(APIModel):
    status: str
    version: str
    models: int
    providers: list[str]
