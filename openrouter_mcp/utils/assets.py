from __future__ import annotations

import asyncio
import contextlib
import mimetypes
import os
import tempfile
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from uuid import uuid4

import httpx
from loguru import logger

from ..exceptions import AssetError
from ..shard import constants as C
from .image_utils import guess_extension_from_mime, is_data_url, is_url, parse_data_url, to_base64


@dataclass
class TransientAsset:
    """Call-scoped local copy of a reference image.

    Only the Gemini direct path needs one: its request carries the image
    inline, so remote URLs are downloaded first.
    """

    source: str
    path: str
    data: bytes
    mime_type: str = C.DEFAULT_MIME
    released: bool = field(default=False, compare=False)

    def to_base64(self) -> str:
        return to_base64(self.data)


def _transient_path(mime_type: str, directory: str | None = None) -> str:
    # time_ns keeps names ordered; the uuid suffix separates concurrent calls.
    name = f"{C.TRANSIENT_ASSET_PREFIX}{time.time_ns()}_{uuid4().hex[:8]}{guess_extension_from_mime(mime_type)}"
    return os.path.join(directory or tempfile.gettempdir(), name)


def _write_bytes(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)


def _download_client(proxy_url: str | None, timeout: float) -> httpx.AsyncClient:
    try:
        return httpx.AsyncClient(proxy=proxy_url or None, timeout=timeout, follow_redirects=True)
    except (ValueError, ImportError, httpx.InvalidURL) as e:
        raise AssetError(f"Cannot download reference image through proxy {proxy_url}: {e}") from e


async def _fetch(url: str, *, proxy_url: str | None, timeout: float) -> tuple[bytes, str]:
    async with _download_client(proxy_url, timeout) as client:
        resp = await client.get(url)
        resp.raise_for_status()
    content_type = resp.headers.get("content-type", "").split(";")[0].strip()
    if not content_type.startswith("image/"):
        guessed, _ = mimetypes.guess_type(url)
        content_type = guessed or C.DEFAULT_MIME
    return resp.content, content_type


async def materialize(
    reference: str,
    *,
    proxy_url: str | None = None,
    timeout: float = C.DEFAULT_TIMEOUT_SECONDS,
    directory: str | None = None,
) -> TransientAsset:
    """Create a uniquely named local file holding the reference image.

    Data URIs are decoded in memory; http(s) URLs are fetched (through the
    proxy when one is configured).

    Raises:
        AssetError: the reference cannot be decoded, fetched or written.
    """
    try:
        if is_data_url(reference):
            data, mime = parse_data_url(reference)
        elif is_url(reference):
            data, mime = await _fetch(reference, proxy_url=proxy_url, timeout=timeout)
        else:
            raise AssetError("Unsupported image reference: expected an http(s) URL or a data URI")
    except httpx.HTTPError as e:
        raise AssetError(f"Failed to download reference image: {e}") from e
    except ValueError as e:
        raise AssetError(f"Invalid reference image: {e}") from e

    if not data:
        raise AssetError("Reference image is empty")

    path = _transient_path(mime, directory)
    try:
        await asyncio.to_thread(_write_bytes, path, data)
    except OSError as e:
        _unlink_quietly(path)
        raise AssetError(f"Cannot write transient asset {path}: {e}") from e

    logger.debug(f"Materialized reference image to {path} ({len(data)} bytes, {mime})")
    return TransientAsset(source=reference, path=path, data=data, mime_type=mime)


def _unlink_quietly(path: str) -> bool:
    try:
        os.unlink(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Failed to remove transient asset {path}: {e}")
        return False


def release(asset: TransientAsset | None) -> None:
    """Delete the asset's file. Never raises; repeated calls are no-ops."""
    if asset is None or asset.released:
        return
    asset.released = True
    if _unlink_quietly(asset.path):
        logger.debug(f"Released transient asset {asset.path}")


@contextlib.asynccontextmanager
async def transient_asset(
    reference: str,
    *,
    proxy_url: str | None = None,
    timeout: float = C.DEFAULT_TIMEOUT_SECONDS,
    directory: str | None = None,
) -> AsyncIterator[TransientAsset]:
    """Materialize ``reference`` for the duration of the block, then release it."""
    asset = await materialize(reference, proxy_url=proxy_url, timeout=timeout, directory=directory)
    try:
        yield asset
    finally:
        release(asset)


__all__ = ["TransientAsset", "materialize", "release", "transient_asset"]
