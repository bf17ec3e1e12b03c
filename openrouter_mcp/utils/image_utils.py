from __future__ import annotations

import base64
import binascii
import mimetypes
import os
import tempfile
from datetime import datetime
from uuid import uuid4

from loguru import logger

from ..shard import constants as C


# --------------------------- source classifiers --------------------------- #
def is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def is_data_url(value: str) -> bool:
    return value.startswith("data:")


def guess_mime_from_path(path: str) -> str:
    mime, _ = mimetypes.guess_type(path)
    return mime or C.DEFAULT_MIME


def parse_data_url(data_url: str) -> tuple[bytes, str]:
    """Decode a ``data:<mime>;base64,<payload>`` URL into (bytes, mime)."""
    try:
        header, payload = data_url.split(",", 1)
    except ValueError:
        raise ValueError("Invalid data URL format")

    if not header.startswith("data:"):
        raise ValueError("Invalid data URL format")

    mime = header[len("data:") :].split(";")[0] or C.DEFAULT_MIME

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Cannot decode base64 data: {e}") from e
    return data, mime


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def read_local_image(path: str) -> tuple[bytes, str]:
    """Read an image file from disk, returning (bytes, mime)."""
    if not os.path.isfile(path):
        raise ValueError(f"File not found: {path}")
    with open(path, "rb") as f:
        data = f.read()
    if not data:
        raise ValueError(f"Image file is empty: {path}")
    return data, guess_mime_from_path(path)


def guess_extension_from_mime(mime: str) -> str:
    """Guess file extension from MIME type."""
    if mime.endswith("/png"):
        return ".png"
    elif mime.endswith("/jpeg") or mime.endswith("/jpg"):
        return ".jpg"
    elif mime.endswith("/webp"):
        return ".webp"
    elif mime.endswith("/gif"):
        return ".gif"
    else:
        return ".png"  # Default fallback


def ensure_directory(directory: str | None) -> str:
    """Ensure directory exists, creating if necessary. Returns absolute path.

    If directory is None, creates a temporary directory.
    """
    if directory is None:
        return tempfile.mkdtemp(prefix=C.TEMP_DIR_PREFIX, dir=tempfile.gettempdir())

    abs_directory = os.path.abspath(directory)
    try:
        os.makedirs(abs_directory, exist_ok=True)
    except OSError as e:
        raise ValueError(f"Cannot create directory {abs_directory}: {e}") from e
    return abs_directory


def unique_image_filename(mime_type: str = C.DEFAULT_MIME, prefix: str = "") -> str:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    unique_id = str(uuid4())[:8]
    return f"{prefix}{timestamp}_{unique_id}{guess_extension_from_mime(mime_type)}"


def write_image_file(image_bytes: bytes, path: str) -> str:
    """Write image bytes to an explicit path, creating parent directories."""
    abs_path = os.path.abspath(path)
    parent = os.path.dirname(abs_path)
    if parent:
        ensure_directory(parent)
    try:
        with open(abs_path, "wb") as f:
            f.write(image_bytes)
    except OSError as e:
        raise ValueError(f"Cannot write image to {abs_path}: {e}") from e
    return abs_path


def save_image_bytes(image_bytes: bytes, directory: str | None, mime_type: str = C.DEFAULT_MIME, prefix: str = "image_") -> str:
    """Save image bytes to disk under a generated name and return the absolute path.

    Args:
        image_bytes: Raw image data
        directory: Target directory (None for temp directory)
        mime_type: MIME type for determining file extension
        prefix: Filename prefix

    Raises:
        ValueError: If directory creation fails or image saving fails
    """
    target_dir = ensure_directory(directory)
    file_path = os.path.join(target_dir, unique_image_filename(mime_type, prefix))
    return write_image_file(image_bytes, file_path)


def save_image_from_data_url(data_url: str, directory: str | None, prefix: str = "image_") -> str:
    """Save image from data URL to disk and return the absolute path.

    Raises:
        ValueError: If data URL is invalid or saving fails
    """
    image_bytes, mime_type = parse_data_url(data_url)
    return save_image_bytes(image_bytes, directory, mime_type, prefix)


def save_response_images(image_urls: list[str], directory: str | None) -> list[str | None]:
    """Persist data-URL images returned by OpenRouter.

    Returns one entry per input URL: the saved path, or None when the image
    was a remote URL, no directory was given, or saving failed. Errors for
    individual images are logged and do not stop processing of other images.
    """
    if not directory or not image_urls:
        return [None for _ in image_urls]

    saved: list[str | None] = []
    for index, url in enumerate(image_urls, start=1):
        if not url.startswith("data:image/"):
            saved.append(None)
            continue
        try:
            saved.append(save_image_from_data_url(url, directory, prefix=f"generated_image_{index}_"))
        except ValueError as e:
            logger.error(f"Failed to save image {index}: {e}")
            saved.append(None)
    return saved


__all__ = [
    "is_url",
    "is_data_url",
    "guess_mime_from_path",
    "parse_data_url",
    "to_base64",
    "read_local_image",
    "guess_extension_from_mime",
    "ensure_directory",
    "unique_image_filename",
    "write_image_file",
    "save_image_bytes",
    "save_image_from_data_url",
    "save_response_images",
]
