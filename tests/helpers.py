from __future__ import annotations

import base64
import os

from openrouter_mcp.shard import constants as C

# 1x1 PNG
SAMPLE_PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChAI9Ecf1UQAAAABJRU5ErkJggg=="
SAMPLE_PNG_BYTES = base64.b64decode(SAMPLE_PNG_B64)
SAMPLE_DATA_URL = f"data:image/png;base64,{SAMPLE_PNG_B64}"

GEMINI_URL = f"{C.GEMINI_BASE_URL}/models/{C.GEMINI_IMAGE_MODEL}:generateContent"
OPENROUTER_CHAT_URL = f"{C.OPENROUTER_BASE_URL}/chat/completions"
OPENROUTER_MODELS_URL = f"{C.OPENROUTER_BASE_URL}/models"


def gemini_image_response(b64: str = SAMPLE_PNG_B64, mime: str = "image/png", text: str | None = None) -> dict:
    parts: list[dict] = []
    if text:
        parts.append({"text": text})
    parts.append({"inlineData": {"mimeType": mime, "data": b64}})
    return {"candidates": [{"content": {"role": "model", "parts": parts}, "finishReason": "STOP"}]}


def gemini_text_response(text: str = "I cannot draw that.") -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}]}


def chat_completion(
    content: str | None = "Here is your image.",
    images: list[str] | None = None,
    model: str = C.DEFAULT_IMAGE_MODEL,
) -> dict:
    message: dict = {"role": "assistant", "content": content}
    if images is not None:
        message["images"] = [{"type": "image_url", "image_url": {"url": url}} for url in images]
    return {
        "id": "gen-123",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [{"index": 0, "message": message, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 34, "total_tokens": 46},
    }


def openrouter_error(message: str = "Upstream error") -> dict:
    return {"error": {"message": message, "code": 500}}


def model_record(model_id: str, name: str | None = None) -> dict:
    return {
        "id": model_id,
        "object": "model",
        "created": 1700000000,
        "owned_by": model_id.split("/")[0],
        "name": name or model_id,
        "description": f"{model_id} description",
        "context_length": 128000,
        "pricing": {"prompt": "0.000001", "completion": "0.000002"},
    }


def transient_files(directory: str) -> list[str]:
    return [name for name in os.listdir(directory) if name.startswith(C.TRANSIENT_ASSET_PREFIX)]
