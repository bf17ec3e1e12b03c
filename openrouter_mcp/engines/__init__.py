from __future__ import annotations

from .fallback import FallbackOrchestrator
from .gemini import GeminiDirect
from .openrouter import OpenRouter

__all__ = ["FallbackOrchestrator", "GeminiDirect", "OpenRouter"]
