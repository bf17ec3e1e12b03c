from __future__ import annotations

from .shard import constants as C
from .utils.error_helpers import augment_with_credentials_tip


class ImageGenerationError(Exception):
    """Base error for tool-level failures.

    ``user_message`` is what MCP clients see; ``message`` keeps the raw
    provider text for logs.
    """

    code: str = C.ERROR_CODE_PROVIDER_ERROR

    def __init__(self, message: str, *, user_message: str | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.user_message = user_message or augment_with_credentials_tip(message)


class ConfigurationError(ImageGenerationError):
    """Raised when no provider has usable credentials."""

    code = C.ERROR_CODE_CONFIGURATION


class ValidationError(ImageGenerationError):
    """Raised for tool arguments the server cannot act on."""

    code = C.ERROR_CODE_VALIDATION


class ProviderError(ImageGenerationError):
    """Raised when a single provider call fails and there is nothing to fall back to."""

    def __init__(self, provider: str, message: str, *, status_code: int | None = None, user_message: str | None = None) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message, user_message=user_message)


class AssetError(ImageGenerationError):
    """Raised when a reference image cannot be materialized locally."""

    code = C.ERROR_CODE_ASSET_ERROR


class FallbackError(ImageGenerationError):
    """Raised when the direct attempt (if any) and the fallback both failed."""

    code = C.ERROR_CODE_FALLBACK_EXHAUSTED

    def __init__(self, secondary_failure: str, *, direct_failure: str | None = None) -> None:
        self.direct_failure = direct_failure
        self.secondary_failure = secondary_failure
        if direct_failure:
            message = f"Gemini direct failed: {direct_failure}; OpenRouter fallback failed: {secondary_failure}"
        else:
            message = f"OpenRouter failed: {secondary_failure}"
        super().__init__(message)


__all__ = [
    "ImageGenerationError",
    "ConfigurationError",
    "ValidationError",
    "ProviderError",
    "AssetError",
    "FallbackError",
]
