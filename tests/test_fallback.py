from __future__ import annotations

import json
import os
from typing import Any

import httpx
import pytest

from openrouter_mcp.engines import FallbackOrchestrator
from openrouter_mcp.engines.base_engine import ImageEngine
from openrouter_mcp.exceptions import ConfigurationError, FallbackError
from openrouter_mcp.schema import AttemptEmpty, AttemptError, AttemptSuccess, ImageRequest
from openrouter_mcp.settings import ProviderCredentials
from openrouter_mcp.shard.enums import FallbackState, Operation, ProviderLabel

from .helpers import (
    GEMINI_URL,
    OPENROUTER_CHAT_URL,
    SAMPLE_DATA_URL,
    SAMPLE_PNG_B64,
    SAMPLE_PNG_BYTES,
    chat_completion,
    gemini_image_response,
    gemini_text_response,
    openrouter_error,
    transient_files,
)

REMOTE_IMAGE = "https://img.test/reference.png"


def _mock_remote_image(respx_mock) -> Any:
    return respx_mock.get(REMOTE_IMAGE).mock(
        return_value=httpx.Response(200, content=SAMPLE_PNG_BYTES, headers={"content-type": "image/png"})
    )


# --------------------------------------------------------------------------- #
# End-to-end flows against mocked upstream HTTP
# --------------------------------------------------------------------------- #


@pytest.mark.respx(assert_all_called=False)
async def test_direct_edit_success_releases_asset(both_credentials, respx_mock, asset_dir, tmp_path):
    """Remote reference image, Gemini answers with an inline image."""
    download = _mock_remote_image(respx_mock)
    gemini = respx_mock.post(GEMINI_URL).mock(return_value=httpx.Response(200, json=gemini_image_response()))
    openrouter = respx_mock.post(OPENROUTER_CHAT_URL)
    out_dir = tmp_path / "out"

    orchestrator = FallbackOrchestrator(both_credentials)
    report = await orchestrator.run(ImageRequest.edit("add a hat", [REMOTE_IMAGE], output_directory=str(out_dir)))

    assert report.provider_used == ProviderLabel.GEMINI_DIRECT
    assert download.call_count == 1
    assert gemini.call_count == 1
    assert not openrouter.called
    assert transient_files(asset_dir) == []
    assert len(report.saved_paths) == 1
    with open(report.saved_paths[0], "rb") as f:
        assert f.read() == SAMPLE_PNG_BYTES
    assert orchestrator.trace == [FallbackState.START, FallbackState.TRY_DIRECT, FallbackState.SUCCESS]


async def test_direct_http_error_falls_back_with_same_request(both_credentials, respx_mock, asset_dir):
    """Gemini 500, OpenRouter succeeds with the same instruction and images."""
    images = [SAMPLE_DATA_URL, REMOTE_IMAGE]
    gemini = respx_mock.post(GEMINI_URL).mock(return_value=httpx.Response(500, text="internal"))
    openrouter = respx_mock.post(OPENROUTER_CHAT_URL).mock(
        return_value=httpx.Response(200, json=chat_completion("edited", images=["https://cdn.test/out.png"]))
    )

    orchestrator = FallbackOrchestrator(both_credentials)
    report = await orchestrator.run(ImageRequest.edit("add a hat", images))

    assert report.provider_used == ProviderLabel.OPENROUTER
    assert report.usage is not None and report.usage.total_tokens == 46
    assert report.image_urls == ["https://cdn.test/out.png"]
    assert "HTTP 500" in report.direct_failure
    assert gemini.call_count == 1
    assert openrouter.call_count == 1

    content = json.loads(openrouter.calls.last.request.content)["messages"][0]["content"]
    assert content[0] == {"type": "text", "text": "add a hat"}
    assert [part["image_url"]["url"] for part in content[1:]] == images
    assert transient_files(asset_dir) == []


@pytest.mark.respx(assert_all_called=False)
async def test_no_direct_credential_skips_gemini(respx_mock):
    """Without GEMINI_API_KEY the direct endpoint is never called."""
    gemini = respx_mock.post(GEMINI_URL)
    openrouter = respx_mock.post(OPENROUTER_CHAT_URL).mock(
        return_value=httpx.Response(200, json=chat_completion(images=[SAMPLE_DATA_URL]))
    )

    orchestrator = FallbackOrchestrator(ProviderCredentials(openrouter_api_key="or-test-key"))
    report = await orchestrator.run(ImageRequest.generate("a lighthouse"))

    assert gemini.call_count == 0
    assert openrouter.call_count == 1
    assert report.provider_used == ProviderLabel.OPENROUTER
    assert orchestrator.trace == [FallbackState.START, FallbackState.TRY_SECONDARY, FallbackState.SUCCESS]
    assert len(orchestrator.attempts) == 1


async def test_empty_direct_then_failing_secondary_names_both(both_credentials, respx_mock):
    """Gemini 200 without image, then OpenRouter fails."""
    respx_mock.post(GEMINI_URL).mock(return_value=httpx.Response(200, json=gemini_text_response()))
    respx_mock.post(OPENROUTER_CHAT_URL).mock(return_value=httpx.Response(502, json=openrouter_error("bad gateway")))

    orchestrator = FallbackOrchestrator(both_credentials)
    with pytest.raises(FallbackError) as exc_info:
        await orchestrator.run(ImageRequest.generate("a lighthouse"))

    err = exc_info.value
    assert err.direct_failure == "No image data in response"
    assert "HTTP 502" in err.secondary_failure
    assert "Gemini direct failed: No image data in response" in err.user_message
    assert "OpenRouter fallback failed: HTTP 502" in err.user_message
    assert orchestrator.trace[-1] == FallbackState.BOTH_FAILED


async def test_three_images_direct_sends_first_secondary_sends_all(both_credentials, respx_mock, asset_dir):
    """Only images[0] goes to Gemini; OpenRouter receives all three."""
    images = [
        f"data:image/jpeg;base64,{SAMPLE_PNG_B64}",
        "https://img.test/two.png",
        "https://img.test/three.png",
    ]
    gemini = respx_mock.post(GEMINI_URL).mock(return_value=httpx.Response(429, text="quota exceeded"))
    openrouter = respx_mock.post(OPENROUTER_CHAT_URL).mock(
        return_value=httpx.Response(200, json=chat_completion(images=[SAMPLE_DATA_URL]))
    )

    report = await FallbackOrchestrator(both_credentials).run(ImageRequest.edit("blend", images))

    direct_parts = json.loads(gemini.calls.last.request.content)["contents"][0]["parts"]
    assert len(direct_parts) == 2
    assert direct_parts[1]["inlineData"] == {"mimeType": "image/jpeg", "data": SAMPLE_PNG_B64}

    content = json.loads(openrouter.calls.last.request.content)["messages"][0]["content"]
    assert [part["type"] for part in content] == ["text", "image_url", "image_url", "image_url"]
    assert [part["image_url"]["url"] for part in content[1:]] == images
    assert report.input_image_count == 3
    assert transient_files(asset_dir) == []


# --------------------------------------------------------------------------- #
# Properties
# --------------------------------------------------------------------------- #


@pytest.mark.respx(assert_all_called=False)
async def test_edit_without_images_never_tries_direct(both_credentials, respx_mock):
    """Edits with zero reference images go straight to OpenRouter."""
    gemini = respx_mock.post(GEMINI_URL)
    respx_mock.post(OPENROUTER_CHAT_URL).mock(return_value=httpx.Response(200, json=chat_completion(images=[SAMPLE_DATA_URL])))

    orchestrator = FallbackOrchestrator(both_credentials)
    report = await orchestrator.run(ImageRequest.edit("make it pop", []))

    assert not gemini.called
    assert FallbackState.TRY_DIRECT not in orchestrator.trace
    assert report.direct_failure == "no reference image for edit"


async def test_direct_resolves_and_releases_before_secondary_starts(both_credentials, respx_mock, asset_dir):
    """No interleaving, and the asset is gone before OpenRouter is called."""
    events: list[str] = []

    def _gemini(request: httpx.Request) -> httpx.Response:
        events.append("direct:start")
        assert len(transient_files(asset_dir)) == 1
        events.append("direct:end")
        return httpx.Response(500, text="boom")

    def _openrouter(request: httpx.Request) -> httpx.Response:
        events.append("secondary:start")
        assert transient_files(asset_dir) == []
        return httpx.Response(200, json=chat_completion(images=[SAMPLE_DATA_URL]))

    respx_mock.post(GEMINI_URL).mock(side_effect=_gemini)
    respx_mock.post(OPENROUTER_CHAT_URL).mock(side_effect=_openrouter)

    await FallbackOrchestrator(both_credentials).run(ImageRequest.edit("tint", [SAMPLE_DATA_URL]))

    assert events == ["direct:start", "direct:end", "secondary:start"]


async def test_asset_released_when_both_fail(both_credentials, respx_mock, asset_dir):
    """The asset is released on the terminal-failure path too."""
    respx_mock.post(GEMINI_URL).mock(return_value=httpx.Response(500, text="boom"))
    respx_mock.post(OPENROUTER_CHAT_URL).mock(return_value=httpx.Response(500, json=openrouter_error()))

    with pytest.raises(FallbackError):
        await FallbackOrchestrator(both_credentials).run(ImageRequest.edit("tint", [SAMPLE_DATA_URL]))

    assert transient_files(asset_dir) == []


async def test_nothing_configured_is_fatal_without_attempts(respx_mock):
    """No credentials at all: fail before any attempt."""
    orchestrator = FallbackOrchestrator(ProviderCredentials())
    with pytest.raises(ConfigurationError):
        await orchestrator.run(ImageRequest.generate("anything"))
    assert orchestrator.attempts == []


async def test_missing_openrouter_key_after_direct_failure(respx_mock):
    respx_mock.post(GEMINI_URL).mock(return_value=httpx.Response(500, text="boom"))

    with pytest.raises(FallbackError) as exc_info:
        await FallbackOrchestrator(ProviderCredentials(gemini_api_key="k")).run(ImageRequest.generate("x"))

    assert "OPENROUTER_API_KEY" in exc_info.value.secondary_failure


@pytest.mark.parametrize("proxy_url", ["proxy.local:8080", "ftp://proxy.local:21"])
async def test_unusable_proxy_falls_back_to_openrouter(proxy_url, respx_mock):
    """A proxy httpx refuses to build a client for is a direct failure, not a crash."""
    openrouter = respx_mock.post(OPENROUTER_CHAT_URL).mock(
        return_value=httpx.Response(200, json=chat_completion(images=[SAMPLE_DATA_URL]))
    )
    credentials = ProviderCredentials(gemini_api_key="k", openrouter_api_key="o", proxy_url=proxy_url)

    orchestrator = FallbackOrchestrator(credentials)
    report = await orchestrator.run(ImageRequest.generate("a lighthouse"))

    assert report.provider_used == ProviderLabel.OPENROUTER
    assert "unusable proxy" in report.direct_failure
    assert openrouter.call_count == 1
    assert orchestrator.trace == [FallbackState.START, FallbackState.TRY_DIRECT, FallbackState.TRY_SECONDARY, FallbackState.SUCCESS]


@pytest.mark.respx(assert_all_called=False)
async def test_reference_download_failure_falls_back(both_credentials, respx_mock, asset_dir):
    """A 404 on the reference image still reaches OpenRouter with the original URL."""
    download = respx_mock.get(REMOTE_IMAGE).mock(return_value=httpx.Response(404))
    gemini = respx_mock.post(GEMINI_URL)
    openrouter = respx_mock.post(OPENROUTER_CHAT_URL).mock(
        return_value=httpx.Response(200, json=chat_completion(images=[SAMPLE_DATA_URL]))
    )

    report = await FallbackOrchestrator(both_credentials).run(ImageRequest.edit("add a hat", [REMOTE_IMAGE]))

    assert report.provider_used == ProviderLabel.OPENROUTER
    assert "Failed to download reference image" in report.direct_failure
    assert download.call_count == 1
    assert not gemini.called
    assert openrouter.call_count == 1
    content = json.loads(openrouter.calls.last.request.content)["messages"][0]["content"]
    assert content[1]["image_url"]["url"] == REMOTE_IMAGE
    assert transient_files(asset_dir) == []


# --------------------------------------------------------------------------- #
# Outcome matrix with scripted engines
# --------------------------------------------------------------------------- #


class ScriptedEngine(ImageEngine):
    outcome: str = "success"
    calls: int = 0

    def is_eligible(self, req: ImageRequest) -> bool:
        if self.provider == ProviderLabel.GEMINI_DIRECT:
            return self.credentials.has_direct and (req.operation == Operation.GENERATE or bool(req.images))
        return True

    def model_label(self, req: ImageRequest) -> str:
        return f"{self.provider.value}-model"

    async def attempt(self, req: ImageRequest):
        self.calls += 1
        model = self.model_label(req)
        if self.outcome == "success":
            if self.provider == ProviderLabel.GEMINI_DIRECT:
                return AttemptSuccess(provider=self.provider, model=model, image_bytes=SAMPLE_PNG_BYTES)
            return AttemptSuccess(provider=self.provider, model=model, image_urls=[SAMPLE_DATA_URL])
        if self.outcome == "empty":
            return AttemptEmpty(provider=self.provider, model=model, text="only text")
        return AttemptError(provider=self.provider, model=model, message=f"{self.provider.value} broke")


OUTCOMES = ["success", "empty", "error"]


@pytest.mark.parametrize("direct_outcome", OUTCOMES)
@pytest.mark.parametrize("secondary_outcome", OUTCOMES)
async def test_outcome_matrix(direct_outcome, secondary_outcome, both_credentials, tmp_path):
    """One report with one provider, fatal only when OpenRouter errors after Gemini failed."""
    direct = ScriptedEngine(provider=ProviderLabel.GEMINI_DIRECT, credentials=both_credentials, name="d", outcome=direct_outcome)
    secondary = ScriptedEngine(provider=ProviderLabel.OPENROUTER, credentials=both_credentials, name="s", outcome=secondary_outcome)
    orchestrator = FallbackOrchestrator(both_credentials, direct=direct, secondary=secondary)
    req = ImageRequest.generate("a kite", output_directory=str(tmp_path))

    if direct_outcome == "success":
        report = await orchestrator.run(req)
        assert report.provider_used == ProviderLabel.GEMINI_DIRECT
        assert secondary.calls == 0
        assert os.path.exists(report.saved_paths[0])
    elif secondary_outcome == "error":
        with pytest.raises(FallbackError):
            await orchestrator.run(req)
        assert secondary.calls == 1
    else:
        report = await orchestrator.run(req)
        assert report.provider_used == ProviderLabel.OPENROUTER
        assert report.direct_failure
        assert secondary.calls == 1

    # Each provider is attempted at most once.
    assert direct.calls == 1
    assert secondary.calls <= 1
