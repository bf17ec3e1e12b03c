from __future__ import annotations

from enum import StrEnum

import httpx
from loguru import logger

from ..exceptions import AssetError
from ..schema import AttemptResult, AttemptSuccess, ImageRequest
from ..settings import ProviderCredentials
from ..shard.enums import Operation, ProviderLabel
from ..utils.assets import transient_asset
from ..utils.error_helpers import describe_http_error
from . import wire
from .base_engine import ImageEngine


class GeminiErrorType(StrEnum):
    """Gemini-specific failure messages."""

    API_KEY_MISSING = "GEMINI_API_KEY is not configured"
    NO_REFERENCE_IMAGE = "At least one image must be provided for editing"
    INVALID_JSON = "Gemini returned a non-JSON response"


class GeminiDirect(ImageEngine):
    """Gemini Developer API adapter, called over plain REST.

    Builds ``generateContent`` bodies through the wire translator and posts
    them with httpx, honouring the resolved proxy. Edit requests send only the
    first reference image; any further images are ignored on this path.
    """

    def __init__(self, credentials: ProviderCredentials) -> None:
        super().__init__(provider=ProviderLabel.GEMINI_DIRECT, credentials=credentials, name="direct:gemini")

    def is_eligible(self, req: ImageRequest) -> bool:
        if not self.credentials.has_direct:
            return False
        if req.operation == Operation.EDIT and not req.images:
            return False
        return True

    def model_label(self, req: ImageRequest | None = None) -> str:
        return self.credentials.gemini_model

    # HTTP client operations
    def _client(self) -> httpx.AsyncClient:
        """Return an httpx client, routed through the proxy when one is set."""
        return httpx.AsyncClient(proxy=self.credentials.proxy_url or None, timeout=self.credentials.timeout)

    async def send(self, prompt: str, image_b64: str | None = None, mime_type: str | None = None) -> AttemptResult:
        """Issue exactly one ``generateContent`` call and classify the outcome."""
        model = self.model_label()
        if not self.credentials.gemini_api_key:
            return self._error(model, GeminiErrorType.API_KEY_MISSING.value)

        url = wire.direct_endpoint(self.credentials.gemini_base_url, model)
        body = wire.to_direct_request(prompt, image_b64, mime_type)
        headers = wire.direct_headers(self.credentials.gemini_api_key)

        if self.credentials.proxy_url:
            logger.info(f"Calling Gemini {model} via proxy {self.credentials.proxy_url}")

        # httpx validates the proxy when the client is built, not on the request.
        try:
            client = self._client()
        except (ValueError, ImportError, httpx.InvalidURL) as e:
            return self._error(model, f"Gemini request failed: unusable proxy {self.credentials.proxy_url}: {e}")

        try:
            async with client:
                resp = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            return self._error(model, f"Gemini request failed: {type(e).__name__}: {e}")

        if not resp.is_success:
            return self._error(model, describe_http_error(resp.status_code, resp.text), status_code=resp.status_code)

        try:
            resp_json = resp.json()
        except ValueError:
            return self._error(model, GeminiErrorType.INVALID_JSON.value, status_code=resp.status_code)

        found = wire.extract_direct_image(resp_json)
        text = wire.extract_direct_text(resp_json)
        if found is None:
            return self._empty(model, text=text)

        image_bytes, mime = found
        return AttemptSuccess(provider=self.provider, model=model, image_bytes=image_bytes, mime_type=mime, text=text)

    async def attempt(self, req: ImageRequest) -> AttemptResult:  # type: ignore[override]
        """Run one direct attempt for a generate/edit request.

        For edits the first reference image is materialized as a transient
        asset, encoded inline, and released before this method returns on
        every path.
        """
        model = self.model_label(req)
        if req.operation == Operation.GENERATE:
            return await self.send(req.prompt)

        if not req.images:
            return self._error(model, GeminiErrorType.NO_REFERENCE_IMAGE.value)

        if len(req.images) > 1:
            logger.debug(f"Gemini direct edit uses only the first of {len(req.images)} images")

        try:
            async with transient_asset(req.images[0], proxy_url=self.credentials.proxy_url, timeout=self.credentials.timeout) as asset:
                return await self.send(req.prompt, asset.to_base64(), asset.mime_type)
        except AssetError as e:
            return self._error(model, e.message)


__all__ = ["GeminiDirect", "GeminiErrorType"]
