from __future__ import annotations

import os
import sys
import tempfile

import pytest

# Add repository root to sys.path for `import openrouter_mcp.*` in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from openrouter_mcp.settings import ProviderCredentials, get_settings  # noqa: E402

from .helpers import SAMPLE_PNG_BYTES  # noqa: E402

CREDENTIAL_ENV_VARS = [
    "OPENROUTER_API_KEY",
    "OPENROUTER_BASE_URL",
    "GEMINI_API_KEY",
    "GEMINI_BASE_URL",
    "GEMINI_IMAGE_MODEL",
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "http_proxy",
    "https_proxy",
    "ALL_PROXY",
    "all_proxy",
    "OUTPUT_DIRECTORY",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Strip provider env vars and cached settings so each test starts unconfigured."""
    for var in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    # Keep a developer's .env out of the picture.
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture
def sample_png_path(tmp_path) -> str:
    path = tmp_path / "input.png"
    path.write_bytes(SAMPLE_PNG_BYTES)
    return str(path)


@pytest.fixture
def asset_dir(tmp_path, monkeypatch) -> str:
    """Redirect the system temp dir so transient assets land in an isolated directory."""
    directory = tmp_path / "tmp"
    directory.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(directory))
    return str(directory)


@pytest.fixture
def both_credentials() -> ProviderCredentials:
    return ProviderCredentials(gemini_api_key="gemini-test-key", openrouter_api_key="or-test-key")
