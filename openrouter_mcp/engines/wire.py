"""Request/response translation for the two upstream image providers.

Gemini ``generateContent`` and OpenRouter chat completions disagree on both
request and response shape. Everything here is a pure transformation: no
I/O, and missing optional fields never raise. Absence shows up as ``None``
or an empty list so callers can classify the attempt as empty.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import ValidationError

from ..schema import ChatCompletionPayload, GeminiResponse, TokenUsage
from ..shard import constants as C
from ..shard.enums import ContentPartType

# --------------------------------- Gemini ----------------------------------- #


def to_direct_request(prompt: str, image_b64: str | None = None, mime_type: str | None = None) -> dict[str, Any]:
    """Build a Gemini ``generateContent`` body.

    Generate sends a single text part; edit appends one ``inlineData`` part
    carrying the already base64-encoded reference image.
    """
    parts: list[dict[str, Any]] = [{"text": prompt}]
    if image_b64 is not None:
        parts.append({"inlineData": {"mimeType": mime_type or C.DEFAULT_MIME, "data": image_b64}})
    return {"contents": [{"parts": parts}]}


def direct_headers(api_key: str) -> dict[str, str]:
    return {"x-goog-api-key": api_key, "Content-Type": "application/json"}


def direct_endpoint(base_url: str, model: str) -> str:
    return f"{base_url.rstrip('/')}/models/{model}:generateContent"


def _decode_inline(inline: Any) -> tuple[bytes, str] | None:
    if not isinstance(inline, dict):
        return None
    data = inline.get("data")
    if not isinstance(data, str) or not data:
        return None
    try:
        image_bytes = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return None
    if not image_bytes:
        return None
    mime = inline.get("mimeType") or inline.get("mime_type") or C.DEFAULT_MIME
    return image_bytes, mime


def _find_inline_image(node: Any) -> tuple[bytes, str] | None:
    """Depth-first search for the first inline image anywhere in ``node``."""
    if isinstance(node, dict):
        for key in ("inlineData", "inline_data"):
            if key in node:
                found = _decode_inline(node[key])
                if found:
                    return found
        for value in node.values():
            found = _find_inline_image(value)
            if found:
                return found
    elif isinstance(node, list):
        for value in node:
            found = _find_inline_image(value)
            if found:
                return found
    return None


def extract_direct_image(response_json: Any) -> tuple[bytes, str] | None:
    """Return (bytes, mime) of the first inline image, or None when there is none.

    The documented location ``candidates[0].content.parts[*].inlineData`` is
    checked first; other candidates and nesting are searched after that.
    """
    if not isinstance(response_json, dict):
        return None
    try:
        parsed = GeminiResponse.model_validate(response_json)
    except ValidationError:
        parsed = None

    if parsed and parsed.candidates:
        content = parsed.candidates[0].content
        for part in content.parts if content else []:
            if part.inline_data is None:
                continue
            found = _decode_inline(part.inline_data.model_dump(by_alias=True))
            if found:
                return found

    return _find_inline_image(response_json)


def extract_direct_text(response_json: Any) -> str | None:
    """Join any text parts Gemini returned alongside (or instead of) an image."""
    if not isinstance(response_json, dict):
        return None
    try:
        parsed = GeminiResponse.model_validate(response_json)
    except ValidationError:
        return None
    texts = [part.text for cand in parsed.candidates if cand.content for part in cand.content.parts if part.text]
    return "\n".join(texts) if texts else None


# -------------------------------- OpenRouter -------------------------------- #


def to_secondary_request(
    prompt: str,
    images: list[str] | tuple[str, ...],
    model: str,
    max_tokens: int = C.DEFAULT_MAX_TOKENS,
    temperature: float = C.DEFAULT_TEMPERATURE,
) -> dict[str, Any]:
    """Build an OpenRouter chat-completions body.

    The text block comes first, then one ``image_url`` block per reference
    image. URLs and data URIs are passed through verbatim.
    """
    content: list[dict[str, Any]] = [{"type": ContentPartType.TEXT.value, "text": prompt}]
    for image in images:
        content.append({"type": ContentPartType.IMAGE_URL.value, "image_url": {"url": image}})
    return {
        "model": model,
        "messages": [{"role": "user", "content": content}],
        "max_tokens": max_tokens,
        "temperature": temperature,
    }


def _parse_completion(response_json: Any) -> ChatCompletionPayload | None:
    if not isinstance(response_json, dict):
        return None
    try:
        return ChatCompletionPayload.model_validate(response_json)
    except ValidationError:
        return None


def extract_secondary_images(response_json: Any) -> list[str]:
    """Image URLs/data URIs at ``choices[0].message.images[*].image_url.url``."""
    parsed = _parse_completion(response_json)
    if not parsed or not parsed.choices or parsed.choices[0].message is None:
        return []
    return [img.image_url.url for img in parsed.choices[0].message.images if img.image_url and img.image_url.url]


def extract_secondary_text(response_json: Any) -> str | None:
    parsed = _parse_completion(response_json)
    if not parsed or not parsed.choices or parsed.choices[0].message is None:
        return None
    content = parsed.choices[0].message.content
    if content is None or isinstance(content, str):
        return content
    # Some models answer with content parts; keep only the text.
    texts = [part.get("text") for part in content if isinstance(part, dict) and part.get("text")]
    return "\n".join(texts) if texts else None


def extract_usage(response_json: Any) -> TokenUsage | None:
    parsed = _parse_completion(response_json)
    return parsed.usage if parsed else None


__all__ = [
    "to_direct_request",
    "direct_headers",
    "direct_endpoint",
    "extract_direct_image",
    "extract_direct_text",
    "to_secondary_request",
    "extract_secondary_images",
    "extract_secondary_text",
    "extract_usage",
]
