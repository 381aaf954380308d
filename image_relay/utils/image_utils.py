from __future__ import annotations

import base64
import mimetypes
import os
import urllib.request
from urllib.parse import unquote, urlparse

from ..shard import constants as C

_PNG_SIG = b"\x89PNG\r\n\x1a\x0a"
_JPEG_SIG = b"\xff\xd8\xff"
_GIF_SIGS = (b"GIF87a", b"GIF89a")


# --------------------------- source classifiers --------------------------- #
def is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def is_data_url(value: str) -> bool:
    return value.startswith("data:")


def is_file_url(value: str) -> bool:
    return value.startswith("file://")


def file_url_to_path(url: str) -> str:
    parsed = urlparse(url)
    return unquote(parsed.path)


def guess_mime_from_path(path: str) -> str:
    mime, _ = mimetypes.guess_type(path)
    return mime or C.DEFAULT_MIME


# ------------------------------ sniffing ---------------------------------- #
def detect_image_mime(data: bytes) -> str | None:
    """Return the image MIME type from magic bytes, or None when unrecognised."""
    if not data:
        return None
    if data.startswith(_PNG_SIG):
        return "image/png"
    if data.startswith(_JPEG_SIG):
        return "image/jpeg"
    if data.startswith(_GIF_SIGS):
        return "image/gif"
    if data.startswith(b"RIFF") and b"WEBP" in data[:32]:
        return "image/webp"
    return None


def validate_image_bytes(data: bytes) -> str:
    """Ensure the bytes look like an image and return the detected MIME type.

    Raises ValueError if validation fails.
    """
    if not data or len(data) < 16:
        raise ValueError("Image data is empty or too small")
    mime = detect_image_mime(data)
    if mime is None:
        raise ValueError("Unsupported or corrupt image data; expected PNG/JPEG/GIF/WEBP")
    return mime


# --------------------------- IO + conversion ------------------------------ #
def read_image_bytes_and_mime(source: str, *, validate: bool = True) -> tuple[bytes, str]:
    """Read image content from various source forms.

    Accepts http(s) URLs, data URLs, local file paths, file:// URLs, or bare base64.
    Returns (bytes, mime_type).
    """
    if is_url(source):
        with urllib.request.urlopen(source) as resp:  # nosec - controlled by caller
            mime = resp.headers.get_content_type() or C.DEFAULT_MIME
            data = resp.read()
    elif is_data_url(source):
        try:
            header, payload = source.split(",", 1)
        except ValueError:
            raise ValueError("Invalid data URL for image")
        mime = header.split(";")[0].split(":", 1)[-1] or C.DEFAULT_MIME
        data = base64.b64decode(payload)
    elif is_file_url(source) or os.path.exists(source):
        path = file_url_to_path(source) if is_file_url(source) else source
        if not os.path.exists(path):
            raise ValueError(f"File not found: {path}")
        with open(path, "rb") as f:
            data = f.read()
        mime = guess_mime_from_path(path)
    else:
        try:
            data = base64.b64decode(source, validate=True)
        except ValueError:
            raise ValueError("Unsupported image source: must be URL, data URL, local file path, or base64 string")
        mime = C.DEFAULT_MIME

    if validate:
        mime = validate_image_bytes(data)
    return data, mime


def to_data_url(b64: str, mime: str = C.DEFAULT_MIME) -> str:
    """Wrap a base64 payload as a data URL; existing data URLs pass through."""
    if is_data_url(b64):
        return b64
    return f"data:{mime};base64,{b64}"


def split_data_url(data_url: str) -> tuple[str, str]:
    """Return (mime, base64 payload) for a data URL."""
    header, payload = data_url.split(",", 1)
    mime = header.split(";")[0].split(":", 1)[-1] or C.DEFAULT_MIME
    return mime, payload


__all__ = [
    "is_url",
    "is_data_url",
    "is_file_url",
    "file_url_to_path",
    "guess_mime_from_path",
    "detect_image_mime",
    "validate_image_bytes",
    "read_image_bytes_and_mime",
    "to_data_url",
    "split_data_url",
]
