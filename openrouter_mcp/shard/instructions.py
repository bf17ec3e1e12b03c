from __future__ import annotations

# Tool descriptions used by FastMCP when registering tools. Keep short and clear.
TOOL_DESCRIPTIONS: dict[str, str] = {
    "list_models": "Get list of available OpenRouter models.",
    "get_model_info": "Get detailed information about a specific OpenRouter model.",
    "chat_with_model": "Send a message to a specific OpenRouter model (supports text and images).",
    "compare_models": "Compare responses from multiple models (supports text and images).",
    "generate_image": (
        "Generate images. Tries Gemini directly when GEMINI_API_KEY is configured and falls back to the "
        "OpenRouter image model on failure. The report states which provider served the result."
    ),
    "edit_image": (
        "Edit images with a text instruction. Pass images as https URLs or data URIs. The Gemini direct path "
        "uses only images[0]; the OpenRouter fallback receives every image."
    ),
    "gemini_direct_edit": "Edit a local image file with the Gemini API directly (no fallback).",
    "gemini_native_generate": "Generate an image with the Gemini API directly (no fallback).",
}

RESOURCE_DESCRIPTIONS: dict[str, str] = {
    "models": "List of all available OpenRouter models with pricing",
    "pricing": "Current pricing information for all models",
    "usage": "Your OpenRouter usage statistics",
}


# High-level, concise server instructions for agents.
SERVER_INSTRUCTIONS: str = (
    "OpenRouter MCP Server - Agent Instructions.\n"
    "Role: This server proxies OpenRouter models (chat, comparison, model listing) and provides image "
    "generation/editing with a Gemini-direct path that falls back to OpenRouter.\n\n"
    "Workflow (short):\n"
    "1) Call list_models or get_model_info to discover model ids.\n"
    "2) Use chat_with_model or compare_models for text and vision prompts.\n"
    "3) Use generate_image / edit_image for images; pass save_directory to keep the results on disk.\n\n"
    "Hard rules (must follow):\n"
    "- Pass edit inputs as https URLs or data URIs (data:image/<type>;base64,<payload>).\n"
    "- The Gemini direct path only uses the first input image; provide the most important image first.\n"
    "- gemini_direct_edit and gemini_native_generate never fall back; use them only to target Gemini.\n\n"
    "Outputs and failures (summary):\n"
    "- Every tool returns a human-readable text report. Image reports name the provider that served them.\n"
    "- Failures surface as MCP ToolErrors with a descriptive message; when both image providers fail the "
    "message names both failure reasons."
)


__all__ = ["TOOL_DESCRIPTIONS", "RESOURCE_DESCRIPTIONS", "SERVER_INSTRUCTIONS"]
