"""Project constants for the OpenRouter proxy and the Gemini-direct image path.

Provider endpoints, defaults shared by the tool layer and the engines, and the
stable error codes surfaced to MCP clients. Provider wire details belong in
``engines/wire.py``.
"""

from __future__ import annotations

from typing import Final

# ----------------------------- Upstream endpoints ---------------------------- #

OPENROUTER_BASE_URL: Final[str] = "https://openrouter.ai/api/v1"
GEMINI_BASE_URL: Final[str] = "https://generativelanguage.googleapis.com/v1beta"

# Model Gemini direct calls are routed to.
GEMINI_IMAGE_MODEL: Final[str] = "gemini-2.5-flash-image-preview"

# Aggregator-side image model used when the caller does not pick one.
DEFAULT_IMAGE_MODEL: Final[str] = "google/gemini-2.5-flash-image-preview:free"

# ----------------------------- General defaults ----------------------------- #

DEFAULT_MAX_TOKENS: Final[int] = 1000
DEFAULT_COMPARE_MAX_TOKENS: Final[int] = 500
DEFAULT_TEMPERATURE: Final[float] = 0.7
DEFAULT_TIMEOUT_SECONDS: Final[float] = 120.0

# Normalized default mime type when a provider does not report one.
DEFAULT_MIME: Final[str] = "image/png"

# Default output files of the direct-only Gemini tools.
DEFAULT_DIRECT_EDIT_OUTPUT: Final[str] = "gemini-edited-image.png"
DEFAULT_DIRECT_GENERATE_OUTPUT: Final[str] = "gemini-native-image.png"

# Prefixes for files written by this server.
TRANSIENT_ASSET_PREFIX: Final[str] = "openrouter_mcp_asset_"
TEMP_DIR_PREFIX: Final[str] = "openrouter_mcp_"

# Number of characters of an image URL echoed back in text reports.
URL_PREVIEW_CHARS: Final[int] = 50


# General error codes used across engines
ERROR_CODE_PROVIDER_ERROR: Final[str] = "provider_error"
ERROR_CODE_CONFIGURATION: Final[str] = "configuration_error"
ERROR_CODE_FALLBACK_EXHAUSTED: Final[str] = "fallback_exhausted"
ERROR_CODE_ASSET_ERROR: Final[str] = "asset_error"
ERROR_CODE_VALIDATION: Final[str] = "validation_error"
