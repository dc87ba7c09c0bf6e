"""
Decode, orient, resize and re-encode source images to WebP.

Each source format maps to an ordered list of attempts. An attempt covers
the whole decode-resize-encode sequence, because some HEIF files open fine
and only fail when pixels are actually pulled at encode time. The first
attempt that produces bytes wins; if all fail the result records why.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Callable, Sequence

import pillow_heif
from PIL import Image, ImageOps

from folio_media.services.formats import HEIF_EXTENSIONS

logger = logging.getLogger(__name__)

pillow_heif.register_heif_opener()

# (source bytes, jpeg quality) -> jpeg bytes
Transcoder = Callable[[bytes, int], bytes]


@dataclass(frozen=True, slots=True)
class DecodeResult:
    """Either derived bytes or the list of attempts that failed."""

    data: bytes | None = None
    attempt: str | None = None
    failures: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.data is not None

    @classmethod
    def success(cls, data: bytes, attempt: str, failures: Sequence[str] = ()) -> "DecodeResult":
        return cls(data=data, attempt=attempt, failures=tuple(failures))

    @classmethod
    def failed(cls, failures: Sequence[str]) -> "DecodeResult":
        return cls(failures=tuple(failures))


@dataclass(frozen=True, slots=True)
class Attempt:
    name: str
    run: Callable[[], bytes]


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)


def render(source: bytes | Path, width: int | None, quality: int) -> bytes:
    """Decode `source`, fix orientation, downscale to `width` and encode WebP."""
    fp = BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    with Image.open(fp) as img:
        img = ImageOps.exif_transpose(img)
        if width and img.width > width:
            height = max(1, int(img.height * width / img.width + 0.5))
            img = img.resize((width, height), Image.Resampling.LANCZOS)
        img = img.convert("RGBA" if _has_alpha(img) else "RGB")
        buffer = BytesIO()
        img.save(buffer, "WEBP", quality=quality)
    return buffer.getvalue()


def heif_to_jpeg(data: bytes, quality: int) -> bytes:
    """
    Transcode HEIF bytes to JPEG by calling libheif directly.

    This uses the same libheif decoder as the direct attempt, so it recovers
    from failures in Pillow's HEIF plugin and encode path (mode handling,
    lazy pixel loading, EXIF transposition), not from libheif itself
    rejecting the file. Pass a different `transcoder` to `MediaPipeline` to
    use an external tool.
    """
    heif_file = pillow_heif.open_heif(BytesIO(data), convert_hdr_to_8bit=True)
    image = Image.frombytes(
        heif_file.mode, heif_file.size, heif_file.data, "raw", heif_file.mode, heif_file.stride
    )
    save_kwargs = {"quality": quality}
    exif = heif_file.info.get("exif")
    if exif:
        save_kwargs["exif"] = exif
    buffer = BytesIO()
    image.convert("RGB").save(buffer, "JPEG", **save_kwargs)
    return buffer.getvalue()


class MediaPipeline:
    """Runs the per-format attempt chain for a single source file."""

    def __init__(
        self,
        quality: int = 85,
        transcode_quality: int = 92,
        transcoder: Transcoder = heif_to_jpeg,
    ):
        self.quality = quality
        self.transcode_quality = transcode_quality
        self.transcoder = transcoder

    def attempts_for(self, path: Path, ext: str, width: int | None) -> list[Attempt]:
        attempts = [Attempt("direct", lambda: render(path, width, self.quality))]
        if ext in HEIF_EXTENSIONS:
            attempts.append(Attempt("transcode", lambda: self._via_transcode(path, width)))
        return attempts

    def _via_transcode(self, path: Path, width: int | None) -> bytes:
        intermediate = self.transcoder(path.read_bytes(), self.transcode_quality)
        return render(intermediate, width, self.quality)

    def derive(self, path: Path, ext: str, width: int | None) -> DecodeResult:
        failures: list[str] = []
        for attempt in self.attempts_for(path, ext, width):
            try:
                data = attempt.run()
            except Exception as exc:
                logger.debug("Attempt %s failed for %s: %s", attempt.name, path.name, exc)
                failures.append(f"{attempt.name}: {type(exc).__name__}: {exc}")
                continue
            return DecodeResult.success(data, attempt.name, failures)
        return DecodeResult.failed(failures)
