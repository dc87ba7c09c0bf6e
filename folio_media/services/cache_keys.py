"""Width parsing and cache key derivation for derived images."""

from __future__ import annotations

import hashlib
import math
import os


def clamp_width(width: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, width))


def parse_width(raw: str | None, minimum: int = 200, maximum: int = 2400) -> int | None:
    """
    Parse the `w` query parameter.

    Returns None (original size) for missing or non-numeric input; otherwise
    rounds half-up and clamps into [minimum, maximum].
    """
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return clamp_width(math.floor(value + 0.5), minimum, maximum)


def derive_cache_key(
    relative_path: str,
    width: int | None,
    version: str,
    mtime_ns: int,
    quality: int,
) -> str:
    """SHA-1 hex digest over the canonical request/source description."""
    rel = relative_path.replace(os.sep, "/")
    canonical = f"{rel}|w={width if width is not None else 'orig'}|v={version}|mtime={mtime_ns}|q={quality}"
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()
