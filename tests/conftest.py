# tests/conftest.py
import sys
from io import BytesIO
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from PIL import Image  # noqa: E402

from folio_media.config import Settings  # noqa: E402

ORIENTATION_TAG = 0x0112


def make_image_bytes(
    fmt: str = "JPEG",
    size: tuple = (800, 600),
    color=(200, 30, 30),
    mode: str = "RGB",
    orientation: int | None = None,
) -> bytes:
    """Build a solid-colour image in memory."""
    img = Image.new(mode, size, color)
    buffer = BytesIO()
    save_kwargs = {}
    if orientation is not None:
        exif = Image.Exif()
        exif[ORIENTATION_TAG] = orientation
        save_kwargs["exif"] = exif.tobytes()
    img.save(buffer, fmt, **save_kwargs)
    return buffer.getvalue()


@pytest.fixture()
def image_bytes():
    return make_image_bytes


@pytest.fixture()
def images_dir(tmp_path):
    path = tmp_path / "images"
    path.mkdir()
    return path


@pytest.fixture()
def cache_dir(tmp_path):
    return tmp_path / "cache" / "photos"


@pytest.fixture()
def settings(images_dir, cache_dir):
    return Settings(
        _env_file=None,
        IMAGES_DIR=images_dir,
        PHOTO_CACHE_DIR=cache_dir,
        LOG_LEVEL="DEBUG",
    )
