"""Supported source formats and their content types."""

from __future__ import annotations

import os
from typing import Final

from folio_media.domain.errors import UnsupportedFormat

SUPPORTED_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {".avif", ".gif", ".heic", ".heif", ".jpeg", ".jpg", ".png", ".webp"}
)

# Served byte-for-byte so animation survives.
ANIMATED_EXTENSIONS: Final[frozenset[str]] = frozenset({".gif"})

# Camera formats that get the transcode fallback.
HEIF_EXTENSIONS: Final[frozenset[str]] = frozenset({".heic", ".heif"})

OUTPUT_EXTENSION: Final = ".webp"
OUTPUT_CONTENT_TYPE: Final = "image/webp"
PLACEHOLDER_CONTENT_TYPE: Final = "image/svg+xml; charset=utf-8"

_CONTENT_TYPES: Final[dict[str, str]] = {
    ".avif": "image/avif",
    ".gif": "image/gif",
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heic",
}


def extension_of(relative_path: str) -> str:
    return os.path.splitext(relative_path)[1].lower()


def is_supported(filename: str) -> bool:
    return extension_of(filename) in SUPPORTED_EXTENSIONS


def check_format(relative_path: str) -> str:
    """Return the lowercase extension or raise `UnsupportedFormat`."""
    ext = extension_of(relative_path)
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormat("Unsupported file type")
    return ext


def content_type_for(ext: str) -> str:
    return _CONTENT_TYPES.get(ext, "application/octet-stream")
