"""
OpenRouter MCP Server

MCP server proxying OpenRouter chat/image models, with a Gemini-direct
image path that falls back to OpenRouter when the direct call fails.
"""

__version__ = "0.1.0"

try:
    import importlib.metadata

    __version__ = importlib.metadata.version("openrouter-mcp")
except (importlib.metadata.PackageNotFoundError, ImportError):
    # Fallback for development mode
    pass

__all__ = ["__version__"]
