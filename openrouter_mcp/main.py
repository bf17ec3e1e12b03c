from __future__ import annotations

import argparse
import asyncio
import json
from typing import Annotated, NoReturn

from fastmcp import FastMCP
from fastmcp.exceptions import ResourceError, ToolError
from loguru import logger
from pydantic import Field
from pydantic import ValidationError as PydanticValidationError

from .engines import FallbackOrchestrator, GeminiDirect, OpenRouter
from .exceptions import ConfigurationError, ImageGenerationError, ProviderError, ValidationError
from .schema import AttemptError, AttemptSuccess, ContentPart, FallbackReport, ImageRequest, ModelPricing, ModelSummary
from .settings import ProviderCredentials, get_settings
from .shard import constants as C
from .shard.enums import Operation, ProviderLabel
from .shard.instructions import RESOURCE_DESCRIPTIONS, SERVER_INSTRUCTIONS, TOOL_DESCRIPTIONS
from .utils.image_utils import read_local_image, to_base64, write_image_file
from .utils.report import render_chat_response, render_comparison

app = FastMCP("openrouter-mcp-server", instructions=SERVER_INSTRUCTIONS)


def _handle_error(e: Exception) -> NoReturn:
    """Convert an exception to a ToolError so clients get isError=True with a readable message."""
    if isinstance(e, ImageGenerationError):
        raise ToolError(e.user_message)

    if isinstance(e, PydanticValidationError):
        details = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ToolError(f"Invalid arguments: {details}")

    logger.error(f"Unexpected error: {type(e).__name__}: {e}")
    raise ToolError("An unexpected error occurred. Please try again.")


def _credentials(api_key: str | None = None, proxy_url: str | None = None) -> ProviderCredentials:
    return ProviderCredentials.resolve(get_settings(), api_key=api_key, proxy_url=proxy_url)


def _openrouter() -> OpenRouter:
    return OpenRouter(_credentials())


# --------------------------------------------------------------------------- #
# Image tools with Gemini-direct first and OpenRouter fallback
# --------------------------------------------------------------------------- #


@app.tool(
    name="generate_image",
    description=TOOL_DESCRIPTIONS["generate_image"],
    annotations={
        "title": "Generate Image",
        "readOnlyHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def mcp_generate_image(
    prompt: Annotated[str, Field(description="Text description of the image to generate.")],
    model: Annotated[str, Field(description="OpenRouter image model used by the fallback path.")] = C.DEFAULT_IMAGE_MODEL,
    max_tokens: Annotated[int, Field(ge=1, description="Maximum tokens for the OpenRouter response.")] = C.DEFAULT_MAX_TOKENS,
    temperature: Annotated[float, Field(ge=0, description="Sampling temperature for the OpenRouter response.")] = C.DEFAULT_TEMPERATURE,
    save_directory: Annotated[
        str | None,
        Field(description="Directory to save generated images. Gemini results fall back to OUTPUT_DIRECTORY or the working directory."),
    ] = None,
) -> str:
    try:
        req = ImageRequest.generate(
            prompt,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            output_directory=save_directory,
        )
        report = await FallbackOrchestrator(_credentials()).run(req)
        return report.render()
    except Exception as e:
        _handle_error(e)


@app.tool(
    name="edit_image",
    description=TOOL_DESCRIPTIONS["edit_image"],
    annotations={
        "title": "Edit Image",
        "readOnlyHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def mcp_edit_image(
    instruction: Annotated[str, Field(description="How the input image(s) should be changed.")],
    images: Annotated[
        list[str],
        Field(description="Input images as https URLs or data URIs (data:image/png;base64,...). Gemini uses only the first."),
    ],
    model: Annotated[str, Field(description="OpenRouter image model used by the fallback path.")] = C.DEFAULT_IMAGE_MODEL,
    max_tokens: Annotated[int, Field(ge=1, description="Maximum tokens for the OpenRouter response.")] = C.DEFAULT_MAX_TOKENS,
    temperature: Annotated[float, Field(ge=0, description="Sampling temperature for the OpenRouter response.")] = C.DEFAULT_TEMPERATURE,
    save_directory: Annotated[str | None, Field(description="Directory to save edited images.")] = None,
) -> str:
    try:
        req = ImageRequest.edit(
            instruction,
            images,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            output_directory=save_directory,
        )
        report = await FallbackOrchestrator(_credentials()).run(req)
        return report.render()
    except Exception as e:
        _handle_error(e)


# --------------------------------------------------------------------------- #
# Gemini-only tools (no fallback)
# --------------------------------------------------------------------------- #


async def _direct_to_file(
    gemini: GeminiDirect,
    operation: Operation,
    prompt: str,
    output_path: str,
    image: tuple[bytes, str] | None = None,
) -> str:
    if image is None:
        result = await gemini.send(prompt)
    else:
        result = await gemini.send(prompt, to_base64(image[0]), image[1])

    if isinstance(result, AttemptError):
        raise ProviderError(gemini.provider.value, result.message, status_code=result.status_code, user_message=result.message)
    if not isinstance(result, AttemptSuccess) or result.image_bytes is None:
        detail = f": {result.text}" if result.text else ""
        raise ProviderError(gemini.provider.value, f"{result.message}{detail}")

    try:
        path = await asyncio.to_thread(write_image_file, result.image_bytes, output_path)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    logger.info(f"Gemini direct {operation.value} saved to {path}")
    report = FallbackReport(
        provider_used=ProviderLabel.GEMINI_DIRECT,
        operation=operation,
        model=result.model,
        prompt=prompt,
        input_image_count=1 if image is not None else 0,
        saved_paths=[path],
        text=result.text,
        proxy=gemini.credentials.proxy_url,
    )
    return report.render()


def _direct_engine(api_key: str | None, proxy_url: str | None) -> GeminiDirect:
    credentials = _credentials(api_key=api_key, proxy_url=proxy_url)
    if not credentials.has_direct:
        raise ConfigurationError("GEMINI_API_KEY is not configured and no api_key was provided")
    return GeminiDirect(credentials)


@app.tool(
    name="gemini_direct_edit",
    description=TOOL_DESCRIPTIONS["gemini_direct_edit"],
    annotations={
        "title": "Gemini Direct Edit",
        "readOnlyHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def mcp_gemini_direct_edit(
    text_prompt: Annotated[str, Field(min_length=1, description="Edit instruction.")],
    image_path: Annotated[str, Field(description="Path of the local image file to edit.")],
    output_path: Annotated[str, Field(description="Where to write the edited image.")] = C.DEFAULT_DIRECT_EDIT_OUTPUT,
    api_key: Annotated[str | None, Field(description="Gemini API key; overrides GEMINI_API_KEY.")] = None,
    proxy_url: Annotated[str | None, Field(description="Proxy URL; overrides HTTP_PROXY/HTTPS_PROXY.")] = None,
) -> str:
    try:
        gemini = _direct_engine(api_key, proxy_url)
        try:
            image = await asyncio.to_thread(read_local_image, image_path)
        except (OSError, ValueError) as e:
            raise ValidationError(f"Cannot read image: {e}") from e
        return await _direct_to_file(gemini, Operation.EDIT, text_prompt, output_path, image)
    except Exception as e:
        _handle_error(e)


@app.tool(
    name="gemini_native_generate",
    description=TOOL_DESCRIPTIONS["gemini_native_generate"],
    annotations={
        "title": "Gemini Native Generate",
        "readOnlyHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def mcp_gemini_native_generate(
    text_prompt: Annotated[str, Field(min_length=1, description="Description of the image to generate.")],
    output_path: Annotated[str, Field(description="Where to write the generated image.")] = C.DEFAULT_DIRECT_GENERATE_OUTPUT,
    api_key: Annotated[str | None, Field(description="Gemini API key; overrides GEMINI_API_KEY.")] = None,
    proxy_url: Annotated[str | None, Field(description="Proxy URL; overrides HTTP_PROXY/HTTPS_PROXY.")] = None,
) -> str:
    try:
        gemini = _direct_engine(api_key, proxy_url)
        return await _direct_to_file(gemini, Operation.GENERATE, text_prompt, output_path)
    except Exception as e:
        _handle_error(e)


# --------------------------------------------------------------------------- #
# OpenRouter proxy tools
# --------------------------------------------------------------------------- #


@app.tool(
    name="list_models",
    description=TOOL_DESCRIPTIONS["list_models"],
    annotations={"title": "List Models", "readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def mcp_list_models() -> str:
    try:
        records = await _openrouter().list_models()
        models = [ModelSummary.model_validate(r).model_dump() for r in records]
        return f"Found {len(models)} available models:\n\n{json.dumps(models, indent=2)}"
    except Exception as e:
        _handle_error(e)


@app.tool(
    name="get_model_info",
    description=TOOL_DESCRIPTIONS["get_model_info"],
    annotations={"title": "Get Model Info", "readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def mcp_get_model_info(
    model: Annotated[str, Field(description="Model id, e.g. 'openai/gpt-4o'.")],
) -> str:
    try:
        record = await _openrouter().get_model(model)
        return json.dumps(record, indent=2)
    except Exception as e:
        _handle_error(e)


@app.tool(
    name="chat_with_model",
    description=TOOL_DESCRIPTIONS["chat_with_model"],
    annotations={"title": "Chat With Model", "readOnlyHint": False, "idempotentHint": False, "openWorldHint": True},
)
async def mcp_chat_with_model(
    model: Annotated[str, Field(description="Model id to chat with.")],
    message: Annotated[
        str | list[ContentPart],
        Field(description="Plain text, or a list of 'text' and 'image_url' content parts."),
    ],
    max_tokens: Annotated[int, Field(ge=1, description="Maximum tokens in the response.")] = C.DEFAULT_MAX_TOKENS,
    temperature: Annotated[float, Field(ge=0, description="Sampling temperature.")] = C.DEFAULT_TEMPERATURE,
    system_prompt: Annotated[str | None, Field(description="Optional system prompt.")] = None,
    save_directory: Annotated[str | None, Field(description="Directory to save images returned by the model.")] = None,
) -> str:
    try:
        resp_json = await _openrouter().chat(
            model,
            message,
            max_tokens=max_tokens,
            temperature=temperature,
            system_prompt=system_prompt,
        )
        return await asyncio.to_thread(render_chat_response, model, resp_json, save_directory)
    except Exception as e:
        _handle_error(e)


@app.tool(
    name="compare_models",
    description=TOOL_DESCRIPTIONS["compare_models"],
    annotations={"title": "Compare Models", "readOnlyHint": False, "idempotentHint": False, "openWorldHint": True},
)
async def mcp_compare_models(
    models: Annotated[list[str], Field(min_length=1, description="Model ids to compare.")],
    message: Annotated[
        str | list[ContentPart],
        Field(description="Plain text, or a list of 'text' and 'image_url' content parts."),
    ],
    max_tokens: Annotated[int, Field(ge=1, description="Maximum tokens per response.")] = C.DEFAULT_COMPARE_MAX_TOKENS,
) -> str:
    try:
        results = await _openrouter().compare(models, message, max_tokens=max_tokens)
        return render_comparison(results)
    except Exception as e:
        _handle_error(e)


# --------------------------------------------------------------------------- #
# Resources
# --------------------------------------------------------------------------- #


@app.resource(
    "openrouter://models",
    name="Available Models",
    description=RESOURCE_DESCRIPTIONS["models"],
    mime_type="application/json",
)
async def resource_models() -> str:
    try:
        records = await _openrouter().list_models()
    except ImageGenerationError as e:
        raise ResourceError(f"Failed to read resource openrouter://models: {e.user_message}") from e
    return json.dumps({"data": records}, indent=2)


@app.resource(
    "openrouter://pricing",
    name="Model Pricing",
    description=RESOURCE_DESCRIPTIONS["pricing"],
    mime_type="application/json",
)
async def resource_pricing() -> str:
    try:
        records = await _openrouter().list_models()
    except ImageGenerationError as e:
        raise ResourceError(f"Failed to read resource openrouter://pricing: {e.user_message}") from e
    pricing = [ModelPricing.model_validate(r).model_dump() for r in records]
    return json.dumps(pricing, indent=2)


@app.resource(
    "openrouter://usage",
    name="Usage Statistics",
    description=RESOURCE_DESCRIPTIONS["usage"],
    mime_type="application/json",
)
def resource_usage() -> str:
    return json.dumps(
        {
            "message": "Usage statistics would be available here",
            "note": "OpenRouter doesn't provide a direct usage API endpoint",
        },
        indent=2,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="OpenRouter MCP Server")
    # Only accept transports supported by FastMCP for server runs. SSE is
    # legacy but still supported for backward compatibility.
    parser.add_argument(
        "--transport",
        choices=["stdio", "http", "sse", "streamable-http"],
        help="Transport to use (stdio, sse, http, streamable-http). Default: stdio",
    )
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to listen on")
    return parser


def main() -> None:
    args = build_parser().parse_args()

    transport = args.transport
    host = args.host
    port = args.port

    settings = get_settings()
    if not settings.use_gemini and not settings.use_openrouter:
        logger.warning("Neither GEMINI_API_KEY nor OPENROUTER_API_KEY is set; image tools will fail until one is configured")
    elif not settings.use_gemini:
        logger.info("GEMINI_API_KEY not set; image requests go straight to OpenRouter")

    logger.info(f"Starting OpenRouter MCP server on {host}:{port} with {transport} transport")

    # FastMCP's stdio transport does not accept host/port kwargs.
    http_transports = {"http", "sse", "streamable-http"}
    if transport in http_transports:
        app.run(transport=transport, host=host, port=port)
    else:
        app.run()


if __name__ == "__main__":
    main()
