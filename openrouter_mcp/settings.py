from __future__ import annotations

from functools import lru_cache
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .shard import constants as C


class Settings(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(env_file=".env", env_nested_delimiter="__", extra="ignore")

    openrouter_api_key: str | None = Field(default=None, description="API key for OpenRouter")
    openrouter_base_url: str = Field(default=C.OPENROUTER_BASE_URL, description="Base URL of the OpenRouter API")
    openrouter_site_url: str = Field(default="http://localhost:3000", description="Value sent as HTTP-Referer to OpenRouter")
    openrouter_app_name: str = Field(default="OpenRouter MCP Server", description="Value sent as X-Title to OpenRouter")

    gemini_api_key: str | None = Field(default=None, description="API key for the Gemini Developer API")
    gemini_base_url: str = Field(default=C.GEMINI_BASE_URL, description="Base URL of the Gemini REST API")
    gemini_image_model: str = Field(default=C.GEMINI_IMAGE_MODEL, description="Gemini model used for direct image calls")

    http_proxy: str | None = Field(default=None, description="HTTP proxy for direct Gemini calls")
    https_proxy: str | None = Field(default=None, description="HTTPS proxy, used when HTTP_PROXY is unset")

    output_directory: str | None = Field(default=None, description="Default directory for images produced by the direct provider")
    request_timeout: float = Field(default=C.DEFAULT_TIMEOUT_SECONDS, description="Timeout in seconds for upstream HTTP calls")

    @property
    def use_gemini(self) -> bool:
        """Determine if Gemini direct calls are possible based on available credentials."""
        return bool(self.gemini_api_key)

    @property
    def use_openrouter(self) -> bool:
        """Determine if OpenRouter should be used based on available credentials."""
        return bool(self.openrouter_api_key)


class ProviderCredentials(BaseModel):
    """Credentials and endpoints resolved once per call.

    Explicit call arguments always win over values read from the environment.
    Handed to the engines as a value so nothing reads the environment mid-call.
    """

    model_config = ConfigDict(frozen=True)

    gemini_api_key: str | None = None
    gemini_base_url: str = C.GEMINI_BASE_URL
    gemini_model: str = C.GEMINI_IMAGE_MODEL
    openrouter_api_key: str | None = None
    openrouter_base_url: str = C.OPENROUTER_BASE_URL
    openrouter_headers: dict[str, str] = Field(default_factory=dict)
    proxy_url: str | None = None
    output_directory: str | None = None
    timeout: float = C.DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def resolve(cls, settings: Settings, *, api_key: str | None = None, proxy_url: str | None = None) -> ProviderCredentials:
        return cls(
            gemini_api_key=api_key or settings.gemini_api_key,
            gemini_base_url=settings.gemini_base_url,
            gemini_model=settings.gemini_image_model,
            openrouter_api_key=settings.openrouter_api_key,
            openrouter_base_url=settings.openrouter_base_url,
            openrouter_headers={
                "HTTP-Referer": settings.openrouter_site_url,
                "X-Title": settings.openrouter_app_name,
            },
            proxy_url=proxy_url or settings.http_proxy or settings.https_proxy,
            output_directory=settings.output_directory,
            timeout=settings.request_timeout,
        )

    @property
    def has_direct(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def has_secondary(self) -> bool:
        return bool(self.openrouter_api_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
