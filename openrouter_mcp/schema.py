from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .shard import constants as C
from .shard.enums import ImageDetail, Operation, ProviderLabel

# ------------------------------ Chat content -------------------------------- #


class ImageUrl(BaseModel):
    url: str = Field(description="Image URL or data URI (data:image/jpeg;base64,...)")
    detail: ImageDetail | None = Field(default=None, description="Image detail level")


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageUrlContent(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


ContentPart = Annotated[TextContent | ImageUrlContent, Field(discriminator="type")]
MessageContent = str | list[ContentPart]


def content_to_wire(message: MessageContent) -> str | list[dict[str, Any]]:
    """Dump message content to the plain JSON shape OpenRouter expects."""
    if isinstance(message, str):
        return message
    return [part.model_dump(mode="json", exclude_none=True) for part in message]


# ------------------------------- Image request ------------------------------ #


class ImageRequest(BaseModel):
    """Provider-agnostic description of one generate/edit call.

    ``images`` holds remote URLs or data URIs, in caller order. Sampling
    parameters only reach OpenRouter; the Gemini direct path takes no tuning.
    """

    model_config = ConfigDict(frozen=True)

    operation: Operation
    prompt: str = Field(min_length=1)
    images: tuple[str, ...] = ()
    model: str = C.DEFAULT_IMAGE_MODEL
    output_directory: str | None = None
    max_tokens: int = Field(default=C.DEFAULT_MAX_TOKENS, ge=1)
    temperature: float = Field(default=C.DEFAULT_TEMPERATURE, ge=0)

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("prompt must not be blank")
        return v

    @classmethod
    def generate(cls, prompt: str, **kwargs: Any) -> ImageRequest:
        return cls(operation=Operation.GENERATE, prompt=prompt, **kwargs)

    @classmethod
    def edit(cls, prompt: str, images: list[str] | tuple[str, ...], **kwargs: Any) -> ImageRequest:
        return cls(operation=Operation.EDIT, prompt=prompt, images=tuple(images), **kwargs)


# ------------------------------ Attempt outcomes ---------------------------- #


class TokenUsage(BaseModel):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class AttemptSuccess(BaseModel):
    """A provider returned at least one image.

    Gemini fills ``image_bytes``; OpenRouter fills ``image_urls`` (URLs or
    data URIs, persisted as-is).
    """

    kind: Literal["success"] = "success"
    provider: ProviderLabel
    model: str
    image_bytes: bytes | None = None
    mime_type: str = C.DEFAULT_MIME
    image_urls: list[str] = Field(default_factory=list)
    text: str | None = None
    usage: TokenUsage | None = None


class AttemptEmpty(BaseModel):
    """The provider answered 2xx but without any image payload."""

    kind: Literal["empty"] = "empty"
    provider: ProviderLabel
    model: str
    text: str | None = None
    usage: TokenUsage | None = None

    @property
    def message(self) -> str:
        return "No image data in response"


class AttemptError(BaseModel):
    """Transport failure, non-2xx status, malformed body or asset failure."""

    kind: Literal["error"] = "error"
    provider: ProviderLabel
    model: str
    message: str
    status_code: int | None = None


AttemptResult = Annotated[AttemptSuccess | AttemptEmpty | AttemptError, Field(discriminator="kind")]


# ------------------------------- Final report ------------------------------- #


class FallbackReport(BaseModel):
    """The single outcome of a generate/edit call, rendered as text for MCP clients."""

    provider_used: ProviderLabel
    operation: Operation
    model: str
    prompt: str
    input_image_count: int = 0
    image_urls: list[str] = Field(default_factory=list)
    saved_paths: list[str | None] = Field(default_factory=list)
    text: str | None = None
    usage: TokenUsage | None = None
    proxy: str | None = None
    direct_failure: str | None = None

    @property
    def image_count(self) -> int:
        if self.provider_used is ProviderLabel.GEMINI_DIRECT:
            return len([p for p in self.saved_paths if p])
        return len(self.image_urls)

    def render(self) -> str:
        from .utils.report import render_fallback_report  # local import to avoid cycles

        return render_fallback_report(self)


# ------------------------ Provider response schemas ------------------------- #


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class GeminiInlineData(_Lenient):
    mime_type: str | None = Field(default=None, alias="mimeType")
    data: str | None = None


class GeminiPart(_Lenient):
    text: str | None = None
    inline_data: GeminiInlineData | None = Field(default=None, alias="inlineData")


class GeminiContent(_Lenient):
    parts: list[GeminiPart] = Field(default_factory=list)


class GeminiCandidate(_Lenient):
    content: GeminiContent | None = None
    finish_reason: str | None = Field(default=None, alias="finishReason")


class GeminiResponse(_Lenient):
    """Shape of a ``models/*:generateContent`` response, reduced to what we read."""

    candidates: list[GeminiCandidate] = Field(default_factory=list)


class ChatImage(_Lenient):
    type: str | None = None
    image_url: ImageUrl | None = None


class ChatMessage(_Lenient):
    role: str | None = None
    content: str | list[Any] | None = None
    images: list[ChatImage] = Field(default_factory=list)


class ChatChoice(_Lenient):
    message: ChatMessage | None = None


class ChatCompletionPayload(_Lenient):
    """OpenRouter chat completion reduced to the fields this server reads."""

    model: str | None = None
    choices: list[ChatChoice] = Field(default_factory=list)
    usage: TokenUsage | None = None


# ------------------------------ Model listing ------------------------------- #


class ModelSummary(_Lenient):
    id: str
    name: str | None = None
    description: str | None = None
    context_length: int | None = None
    pricing: dict[str, Any] | None = None


class ModelPricing(_Lenient):
    id: str
    name: str | None = None
    pricing: dict[str, Any] | None = None


class ModelCompareResult(BaseModel):
    """Outcome of one model inside compare_models; failures are per-model."""

    model: str
    success: bool
    response: str | None = None
    image_count: int = 0
    usage: TokenUsage | None = None
    error: str | None = None


__all__ = [
    "ImageUrl",
    "TextContent",
    "ImageUrlContent",
    "ContentPart",
    "MessageContent",
    "content_to_wire",
    "ImageRequest",
    "TokenUsage",
    "AttemptSuccess",
    "AttemptEmpty",
    "AttemptError",
    "AttemptResult",
    "FallbackReport",
    "GeminiInlineData",
    "GeminiPart",
    "GeminiContent",
    "GeminiCandidate",
    "GeminiResponse",
    "ChatImage",
    "ChatMessage",
    "ChatChoice",
    "ChatCompletionPayload",
    "ModelSummary",
    "ModelPricing",
    "ModelCompareResult",
]
