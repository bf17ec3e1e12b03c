"""Direct-first image resolution with a single fallback hop.

Every generate/edit call walks the same state machine::

    START -> TRY_DIRECT -> SUCCESS
                       \\-> TRY_SECONDARY -> SUCCESS
    START ------------->   TRY_SECONDARY -> BOTH_FAILED

TRY_DIRECT is entered only when Gemini is eligible (key present and, for
edits, at least one reference image). Each provider is attempted at most
once and the two attempts never overlap: the direct attempt, including the
release of its transient asset, resolves before OpenRouter is called.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from ..exceptions import ConfigurationError, FallbackError, ValidationError
from ..schema import AttemptEmpty, AttemptError, AttemptResult, AttemptSuccess, FallbackReport, ImageRequest
from ..settings import ProviderCredentials
from ..shard.enums import FallbackState, Operation, ProviderLabel
from ..utils.image_utils import save_image_bytes, save_response_images
from .base_engine import ImageEngine
from .gemini import GeminiDirect
from .openrouter import OpenRouter


def _failure_reason(result: AttemptResult) -> str:
    if isinstance(result, AttemptError):
        return result.message
    if isinstance(result, AttemptEmpty):
        return result.message
    return "unexpected success"


class FallbackOrchestrator:
    """Resolve one image request against Gemini direct, then OpenRouter.

    ``trace`` records the visited states of the most recent ``run`` and
    ``attempts`` the provider outcomes in the order they resolved.
    """

    def __init__(
        self,
        credentials: ProviderCredentials,
        *,
        direct: ImageEngine | None = None,
        secondary: ImageEngine | None = None,
    ) -> None:
        self.credentials = credentials
        self.direct = direct or GeminiDirect(credentials)
        self.secondary = secondary or OpenRouter(credentials)
        self.trace: list[FallbackState] = []
        self.attempts: list[AttemptResult] = []

    def _enter(self, state: FallbackState) -> FallbackState:
        self.trace.append(state)
        return state

    async def run(self, req: ImageRequest) -> FallbackReport:
        """Produce exactly one report, or raise.

        Raises:
            ConfigurationError: neither provider has credentials; nothing is attempted.
            FallbackError: OpenRouter failed (after Gemini failed, if it was tried).
            ValidationError: Gemini produced an image but it could not be saved.
        """
        self.trace = []
        self.attempts = []

        if not self.credentials.has_direct and not self.credentials.has_secondary:
            raise ConfigurationError("No provider is configured: set GEMINI_API_KEY and/or OPENROUTER_API_KEY")

        state = self._enter(FallbackState.START)
        direct_failure: str | None = None
        report: FallbackReport | None = None

        while report is None:
            if state == FallbackState.START:
                if self.direct.is_eligible(req):
                    state = self._enter(FallbackState.TRY_DIRECT)
                else:
                    direct_failure = self._ineligible_reason(req)
                    logger.info(f"Skipping Gemini direct ({direct_failure}); using OpenRouter")
                    state = self._enter(FallbackState.TRY_SECONDARY)

            elif state == FallbackState.TRY_DIRECT:
                # The transient asset is released inside attempt(), before we move on.
                result = await self.direct.attempt(req)
                self.attempts.append(result)
                if isinstance(result, AttemptSuccess):
                    report = await self._report_direct(req, result)
                    self._enter(FallbackState.SUCCESS)
                else:
                    direct_failure = _failure_reason(result)
                    logger.warning(f"Gemini direct {req.operation.value} failed ({result.kind}): {direct_failure}; falling back to OpenRouter")
                    state = self._enter(FallbackState.TRY_SECONDARY)

            elif state == FallbackState.TRY_SECONDARY:
                result = await self.secondary.attempt(req)
                self.attempts.append(result)
                if isinstance(result, AttemptError):
                    self._enter(FallbackState.BOTH_FAILED)
                    attempted_direct = FallbackState.TRY_DIRECT in self.trace
                    logger.error(f"OpenRouter {req.operation.value} failed: {result.message}")
                    raise FallbackError(result.message, direct_failure=direct_failure if attempted_direct else None)
                # An empty OpenRouter answer is still a result: there is no third provider.
                report = await self._report_secondary(req, result, direct_failure)
                self._enter(FallbackState.SUCCESS)

            else:  # pragma: no cover - terminal states never loop
                raise RuntimeError(f"Unexpected fallback state {state}")

        logger.info(f"{req.operation.value} served by {report.provider_used.value} ({report.model})")
        return report

    def _ineligible_reason(self, req: ImageRequest) -> str:
        if not self.credentials.has_direct:
            return "GEMINI_API_KEY not configured"
        if req.operation == Operation.EDIT and not req.images:
            return "no reference image for edit"
        return "not eligible"

    async def _report_direct(self, req: ImageRequest, result: AttemptSuccess) -> FallbackReport:
        assert result.image_bytes is not None
        directory = req.output_directory or self.credentials.output_directory or "."
        try:
            path = await asyncio.to_thread(save_image_bytes, result.image_bytes, directory, result.mime_type, "gemini_")
        except ValueError as e:
            raise ValidationError(f"Cannot save image: {e}") from e
        return FallbackReport(
            provider_used=ProviderLabel.GEMINI_DIRECT,
            operation=req.operation,
            model=result.model,
            prompt=req.prompt,
            input_image_count=len(req.images),
            saved_paths=[path],
            text=result.text,
            proxy=self.credentials.proxy_url,
        )

    async def _report_secondary(self, req: ImageRequest, result: AttemptSuccess | AttemptEmpty, direct_failure: str | None) -> FallbackReport:
        image_urls = result.image_urls if isinstance(result, AttemptSuccess) else []
        saved = await asyncio.to_thread(save_response_images, image_urls, req.output_directory)
        return FallbackReport(
            provider_used=ProviderLabel.OPENROUTER,
            operation=req.operation,
            model=result.model,
            prompt=req.prompt,
            input_image_count=len(req.images),
            image_urls=image_urls,
            saved_paths=saved,
            text=result.text,
            usage=result.usage,
            direct_failure=direct_failure,
        )


__all__ = ["FallbackOrchestrator"]
