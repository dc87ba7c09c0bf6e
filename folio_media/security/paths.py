"""Confinement of request paths to the trusted media root."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable
from urllib.parse import unquote

from folio_media.domain.errors import InvalidPath


def join_segments(segments: Iterable[str]) -> str:
    """Percent-decode each path segment independently and join with os.sep."""
    return os.sep.join(unquote(segment) for segment in segments)


def resolve_under(base_dir: str | os.PathLike[str], relative_path: str) -> Path:
    """
    Resolve `relative_path` against `base_dir` and make sure it stays inside.

    Resolution is lexical (no filesystem access): `..` components are folded
    and the result must equal the base or start with the base plus a separator.
    """
    base = os.path.abspath(base_dir)
    resolved = os.path.abspath(os.path.join(base, relative_path))

    if resolved != base and not resolved.startswith(base + os.sep):
        raise InvalidPath("Invalid path")
    return Path(resolved)
