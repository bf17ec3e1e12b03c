from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from ..schema import AttemptEmpty, AttemptError, AttemptResult, ImageRequest, TokenUsage
from ..settings import ProviderCredentials
from ..shard.enums import ProviderLabel
from ..utils.error_helpers import augment_with_credentials_tip


class ImageEngine(ABC, BaseModel):
    """Abstract base for the upstream image providers.

    One ``attempt`` issues at most one provider call and never raises for
    provider-side failures: every outcome comes back as an ``AttemptResult``.
    """

    name: str
    provider: ProviderLabel
    credentials: ProviderCredentials

    def __init__(self, provider: ProviderLabel, credentials: ProviderCredentials, **data):
        """Initialize engine with provider and resolved credentials."""
        super().__init__(provider=provider, credentials=credentials, **data)

    @abstractmethod
    def is_eligible(self, req: ImageRequest) -> bool:
        """Whether this provider may be attempted for ``req`` at all."""
        raise NotImplementedError

    @abstractmethod
    def model_label(self, req: ImageRequest) -> str:
        raise NotImplementedError

    @abstractmethod
    async def attempt(self, req: ImageRequest) -> AttemptResult:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Outcome helpers
    # ------------------------------------------------------------------
    def _error(self, model: str, message: str, status_code: int | None = None) -> AttemptError:
        return AttemptError(provider=self.provider, model=model, message=augment_with_credentials_tip(message), status_code=status_code)

    def _empty(self, model: str, text: str | None = None, usage: TokenUsage | None = None) -> AttemptEmpty:
        return AttemptEmpty(provider=self.provider, model=model, text=text, usage=usage)
