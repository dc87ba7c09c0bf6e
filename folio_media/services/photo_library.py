"""Listing of the photos available under the images directory."""

import logging
import os
import re
from pathlib import Path
from typing import List
from urllib.parse import quote

from folio_media.domain.models import LocalPhoto
from folio_media.services.formats import is_supported

logger = logging.getLogger(__name__)

API_PREFIX = "/api/photos"

# Used purely for layout; avoids per-file metadata reads.
DEFAULT_WIDTH = 1600
DEFAULT_HEIGHT = 1200

_SEPARATORS_RE = re.compile(r"[-_]+")


def alt_from_filename(filename: str) -> str:
    stem = os.path.splitext(filename)[0]
    return _SEPARATORS_RE.sub(" ", stem).strip() or "Photo"


def api_path(filename: str) -> str:
    return f"{API_PREFIX}/{quote(filename, safe='')}"


def list_local_photos(
    images_dir: Path,
    *,
    version: int,
    thumb_width: int,
    viewer_width: int,
) -> List[LocalPhoto]:
    """Return every supported image at the top level of `images_dir`."""
    try:
        entries = [entry for entry in images_dir.iterdir() if entry.is_file()]
    except OSError as exc:
        logger.warning("Images directory %s is not readable: %s", images_dir, exc)
        return []

    names = sorted((e.name for e in entries if is_supported(e.name)), key=str.casefold)

    photos = []
    for name in names:
        base = api_path(name)
        photos.append(
            LocalPhoto(
                id=name,
                src=f"{base}?w={thumb_width}&v={version}",
                viewer_src=f"{base}?w={viewer_width}&v={version}",
                raw_src=f"{base}?raw=1&v={version}",
                width=DEFAULT_WIDTH,
                height=DEFAULT_HEIGHT,
                alt=alt_from_filename(name),
            )
        )
    return photos
