from __future__ import annotations

from enum import StrEnum


class ProviderLabel(StrEnum):
    """Upstream providers an image request can be served by.

    Values are the labels shown in text reports and logs. Keep them stable;
    clients may use them to tell direct results from fallback results.
    """

    GEMINI_DIRECT = "gemini-direct"
    OPENROUTER = "openrouter"

    @property
    def display_name(self) -> str:
        if self is ProviderLabel.GEMINI_DIRECT:
            return "Gemini (direct)"
        return "OpenRouter"


class Operation(StrEnum):
    """Kind of image operation requested by the caller."""

    GENERATE = "generate"
    EDIT = "edit"


class FallbackState(StrEnum):
    """States of the direct-then-aggregator resolution."""

    START = "start"
    TRY_DIRECT = "try_direct"
    TRY_SECONDARY = "try_secondary"
    SUCCESS = "success"
    BOTH_FAILED = "both_failed"


class ContentPartType(StrEnum):
    """Content block types of OpenAI-style chat messages."""

    TEXT = "text"
    IMAGE_URL = "image_url"


class ImageDetail(StrEnum):
    """Detail level hint for image_url content blocks."""

    LOW = "low"
    HIGH = "high"
    AUTO = "auto"


__all__ = ["ProviderLabel", "Operation", "FallbackState", "ContentPartType", "ImageDetail"]
