from __future__ import annotations

from typing import TYPE_CHECKING, Any

import jinja2

from ..shard import constants as C
from ..shard.enums import Operation, ProviderLabel
from ..engines import wire
from . import image_utils

if TYPE_CHECKING:
    from ..schema import FallbackReport, ModelCompareResult, TokenUsage

# ---------------------------------------------------------------------------
# Jinja2 templates for the text reports returned to MCP clients
# ---------------------------------------------------------------------------

# Block tags sit on their own lines: trim_blocks would swallow the newline
# after an inline tag, so per-line variations are computed in Python.
_ENV = jinja2.Environment(
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=jinja2.StrictUndefined,
)

_IMAGES_BLOCK = """{% if images %}

**{{ images_label }}:** {{ images | length }} image(s)
{% for img in images %}
- Image {{ loop.index }}: {{ img.preview }}
{% if img.saved_path %}
  Saved to: {{ img.saved_path }}
{% endif %}
{% endfor %}
{% endif %}
"""

_USAGE_BLOCK = """{% if usage %}

**Usage:**
- Prompt tokens: {{ usage.prompt_tokens }}
- Completion tokens: {{ usage.completion_tokens }}
- Total tokens: {{ usage.total_tokens }}
{% endif %}
"""

_FALLBACK_TEMPLATE = _ENV.from_string(
    """**Provider:** {{ provider }}
**Model:** {{ model }}
**{{ prompt_label }}:** {{ prompt }}
{% if input_line %}
**Input Images:** {{ input_line }}
{% endif %}
{% if show_response %}
**Response:** {{ text }}
{% endif %}
{% for path in direct_saved %}
**Saved to:** {{ path }}
{% endfor %}
{% if proxy %}
**Proxy:** {{ proxy }}
{% endif %}
"""
    + _IMAGES_BLOCK
    + """{% if no_images_note %}

{{ no_images_note }}
{% endif %}
"""
    + _USAGE_BLOCK
    + """{% if direct_failure %}

**Note:** Gemini direct was not used ({{ direct_failure }}); result served by the OpenRouter fallback.
{% endif %}
"""
)

_CHAT_TEMPLATE = _ENV.from_string(
    """**Model:** {{ model }}
**Response:** {{ text }}
"""
    + _IMAGES_BLOCK
    + _USAGE_BLOCK
)

_COMPARE_ENTRY_TEMPLATE = _ENV.from_string(
    """
{% if r.success %}
**{{ r.model }}:**
{{ r.response or "" }}
{% if r.image_count %}
*Generated {{ r.image_count }} image(s)*
{% endif %}
*Tokens: {{ tokens }}*
{% else %}
**{{ r.model }}:** ❌ Error - {{ r.error }}
{% endif %}
"""
)


def _preview(url: str) -> str:
    if len(url) <= C.URL_PREVIEW_CHARS:
        return url
    return f"{url[: C.URL_PREVIEW_CHARS]}..."


def _image_rows(image_urls: list[str], saved_paths: list[str | None]) -> list[dict[str, Any]]:
    rows = []
    for index, url in enumerate(image_urls):
        saved = saved_paths[index] if index < len(saved_paths) else None
        rows.append({"preview": _preview(url), "saved_path": saved})
    return rows


def _usage_context(usage: TokenUsage | None) -> dict[str, Any] | None:
    if usage is None:
        return None
    return {
        "prompt_tokens": usage.prompt_tokens if usage.prompt_tokens is not None else "n/a",
        "completion_tokens": usage.completion_tokens if usage.completion_tokens is not None else "n/a",
        "total_tokens": usage.total_tokens if usage.total_tokens is not None else "n/a",
    }


def render_fallback_report(report: FallbackReport) -> str:
    """Render the text returned by generate_image / edit_image and the direct tools."""
    direct = report.provider_used is ProviderLabel.GEMINI_DIRECT
    is_edit = report.operation == Operation.EDIT

    provider = report.provider_used.display_name
    if not direct and report.direct_failure:
        provider += " (fallback)"

    input_line = None
    if is_edit:
        input_line = f"{report.input_image_count} image(s)"
        if direct and report.input_image_count > 1:
            input_line += " (only the first was sent to Gemini)"

    no_images_note = None
    if not direct and not report.image_urls:
        no_images_note = "No images were returned by the model."

    rendered = _FALLBACK_TEMPLATE.render(
        provider=provider,
        model=report.model,
        prompt_label="Instruction" if is_edit else "Prompt",
        prompt=report.prompt,
        input_line=input_line,
        show_response=(not direct) or bool(report.text),
        text=report.text or "",
        direct_saved=[p for p in report.saved_paths if p] if direct else [],
        proxy=report.proxy if direct else None,
        images_label="Edited Images" if is_edit else "Generated Images",
        images=[] if direct else _image_rows(report.image_urls, report.saved_paths),
        no_images_note=no_images_note,
        usage=_usage_context(report.usage),
        direct_failure=None if direct else report.direct_failure,
    )
    return rendered.strip()


def render_chat_response(model: str, resp_json: dict[str, Any], save_directory: str | None) -> str:
    """Render chat_with_model output, persisting returned images when asked."""
    image_urls = wire.extract_secondary_images(resp_json)
    saved = image_utils.save_response_images(image_urls, save_directory)
    rendered = _CHAT_TEMPLATE.render(
        model=model,
        text=wire.extract_secondary_text(resp_json) or "",
        images_label="Generated Images",
        images=_image_rows(image_urls, saved),
        usage=_usage_context(wire.extract_usage(resp_json)),
    )
    return rendered.strip()


def render_comparison(results: list[ModelCompareResult]) -> str:
    entries = []
    for r in results:
        tokens = r.usage.total_tokens if r.usage and r.usage.total_tokens is not None else "n/a"
        entries.append(_COMPARE_ENTRY_TEMPLATE.render(r=r, tokens=tokens).strip())
    body = "\n\n---\n\n".join(entries)
    return f"Comparison of {len(results)} models:\n\n{body}"


__all__ = ["render_fallback_report", "render_chat_response", "render_comparison"]
