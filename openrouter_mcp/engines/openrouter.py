from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import Any

import openai
from loguru import logger
from openai import AsyncOpenAI

from ..exceptions import ConfigurationError, ProviderError
from ..schema import (
    AttemptResult,
    AttemptSuccess,
    ImageRequest,
    MessageContent,
    ModelCompareResult,
    content_to_wire,
)
from ..settings import ProviderCredentials
from ..shard import constants as C
from ..shard.enums import ProviderLabel
from ..utils.error_helpers import augment_with_credentials_tip
from . import wire
from .base_engine import ImageEngine


class OpenRouterErrorType(StrEnum):
    """OpenRouter-specific failure messages."""

    API_KEY_MISSING = "OPENROUTER_API_KEY environment variable must be set to use OpenRouter"
    MODEL_NOT_FOUND = "Model {model} not found"


def _describe_api_error(e: openai.APIError) -> tuple[str, int | None]:
    status = getattr(e, "status_code", None)
    if status is not None:
        return f"HTTP {status}: {e.message}", status
    return f"{type(e).__name__}: {e.message}", None


class OpenRouter(ImageEngine):
    """OpenRouter adapter over its OpenAI-compatible API surface.

    Serves as the fallback image provider and as the backend of the plain
    proxy tools (chat, comparison, model listing). The client never retries:
    the only second chance an image request gets is the provider hop.
    """

    def __init__(self, credentials: ProviderCredentials) -> None:
        super().__init__(provider=ProviderLabel.OPENROUTER, credentials=credentials, name="proxy:openrouter")

    def is_eligible(self, req: ImageRequest) -> bool:
        # A missing key is a startup concern; attempt() reports it as an error.
        return True

    def model_label(self, req: ImageRequest) -> str:
        return req.model

    # HTTP client operations
    def _client(self) -> AsyncOpenAI:
        """Return configured AsyncOpenAI client routed to the OpenRouter base URL."""
        if not self.credentials.openrouter_api_key:
            raise ConfigurationError(OpenRouterErrorType.API_KEY_MISSING.value)
        return AsyncOpenAI(
            base_url=self.credentials.openrouter_base_url,
            api_key=self.credentials.openrouter_api_key,
            default_headers=self.credentials.openrouter_headers or None,
            max_retries=0,
            timeout=self.credentials.timeout,
        )

    async def _create_completion(self, payload: dict[str, Any]) -> dict[str, Any]:
        client = self._client()
        completion = await client.chat.completions.create(**payload)
        # Convert to pure dict; OpenRouter-only fields such as message.images survive as extras
        return completion.model_dump()

    # ---------------------------- image attempt ---------------------------- #
    async def attempt(self, req: ImageRequest) -> AttemptResult:  # type: ignore[override]
        """Send the full request (prompt plus every reference image) once."""
        model = self.model_label(req)
        payload = wire.to_secondary_request(req.prompt, req.images, model, req.max_tokens, req.temperature)

        try:
            resp_json = await self._create_completion(payload)
        except ConfigurationError as e:
            return self._error(model, e.message)
        except openai.APIError as e:
            message, status = _describe_api_error(e)
            return self._error(model, message, status_code=status)

        images = wire.extract_secondary_images(resp_json)
        text = wire.extract_secondary_text(resp_json)
        usage = wire.extract_usage(resp_json)
        if not images:
            return self._empty(model, text=text, usage=usage)
        return AttemptSuccess(provider=self.provider, model=model, image_urls=images, text=text, usage=usage)

    # ----------------------------- proxy tools ----------------------------- #
    async def chat(
        self,
        model: str,
        message: MessageContent,
        *,
        max_tokens: int = C.DEFAULT_MAX_TOKENS,
        temperature: float | None = C.DEFAULT_TEMPERATURE,
        system_prompt: str | None = None,
    ) -> dict[str, Any]:
        """Single chat completion; returns the raw completion as a dict.

        Raises:
            ProviderError: OpenRouter rejected the request or was unreachable.
        """
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": content_to_wire(message)})

        payload: dict[str, Any] = {"model": model, "messages": messages, "max_tokens": max_tokens}
        if temperature is not None:
            payload["temperature"] = temperature

        try:
            return await self._create_completion(payload)
        except openai.APIError as e:
            message_text, status = _describe_api_error(e)
            raise ProviderError(self.provider.value, augment_with_credentials_tip(message_text), status_code=status) from e

    async def compare(self, models: list[str], message: MessageContent, *, max_tokens: int = C.DEFAULT_COMPARE_MAX_TOKENS) -> list[ModelCompareResult]:
        """Ask every model concurrently; failures are captured per model."""

        async def _one(model: str) -> ModelCompareResult:
            try:
                resp_json = await self.chat(model, message, max_tokens=max_tokens, temperature=None)
            except (ProviderError, ConfigurationError) as e:
                logger.warning(f"compare_models: {model} failed: {e.message}")
                return ModelCompareResult(model=model, success=False, error=e.message)
            return ModelCompareResult(
                model=model,
                success=True,
                response=wire.extract_secondary_text(resp_json),
                image_count=len(wire.extract_secondary_images(resp_json)),
                usage=wire.extract_usage(resp_json),
            )

        return list(await asyncio.gather(*(_one(m) for m in models)))

    async def list_models(self) -> list[dict[str, Any]]:
        """Return the raw model records published by OpenRouter."""
        client = self._client()
        try:
            page = await client.models.list()
        except openai.APIError as e:
            message_text, status = _describe_api_error(e)
            raise ProviderError(self.provider.value, augment_with_credentials_tip(message_text), status_code=status) from e
        return [m.model_dump() for m in page.data]

    async def get_model(self, model_id: str) -> dict[str, Any]:
        for record in await self.list_models():
            if record.get("id") == model_id:
                return record
        raise ProviderError(self.provider.value, OpenRouterErrorType.MODEL_NOT_FOUND.value.format(model=model_id))


__all__ = ["OpenRouter", "OpenRouterErrorType"]
