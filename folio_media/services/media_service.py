"""
Media service: validates photo requests and serves derived or raw bytes.
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Sequence

from folio_media.adapters.artifact_store import ArtifactStore
from folio_media.domain.errors import NotFound
from folio_media.security.paths import join_segments, resolve_under
from folio_media.services.cache_keys import derive_cache_key
from folio_media.services.formats import (
    ANIMATED_EXTENSIONS,
    OUTPUT_CONTENT_TYPE,
    PLACEHOLDER_CONTENT_TYPE,
    check_format,
    content_type_for,
)
from folio_media.services.pipeline import DecodeResult, MediaPipeline
from folio_media.services.placeholder import placeholder_svg

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MediaRequest:
    """What a caller wants for one source file."""

    segments: Sequence[str]
    width: int | None = None
    version: str = ""
    raw: bool = False


@dataclass(frozen=True, slots=True)
class MediaResponse:
    body: bytes
    media_type: str
    cache_status: str  # hit | miss | bypass | degraded


class MediaService:
    """Orchestrates path checks, cache lookups and the derivation pipeline."""

    def __init__(
        self,
        images_dir: str | os.PathLike[str],
        store: ArtifactStore,
        pipeline: MediaPipeline,
    ):
        self.images_dir = Path(images_dir)
        self.store = store
        self.pipeline = pipeline
        self._inflight: Dict[str, asyncio.Task] = {}

    async def serve(self, request: MediaRequest) -> MediaResponse:
        relative_path = join_segments(request.segments)
        ext = check_format(relative_path)
        source = resolve_under(self.images_dir, relative_path)

        try:
            info = await asyncio.to_thread(os.stat, source)
        except OSError:
            raise NotFound("Not found")
        if not stat.S_ISREG(info.st_mode):
            raise NotFound("Not found")

        if request.raw or ext in ANIMATED_EXTENSIONS:
            try:
                data = await asyncio.to_thread(source.read_bytes)
            except OSError:
                raise NotFound("Not found")
            return MediaResponse(data, content_type_for(ext), "bypass")

        key = derive_cache_key(
            relative_path,
            request.width,
            request.version,
            info.st_mtime_ns,
            self.pipeline.quality,
        )
        cached = await self.store.lookup(key)
        if cached is not None:
            return MediaResponse(cached, OUTPUT_CONTENT_TYPE, "hit")

        result = await self._derive_shared(key, source, ext, request.width)
        if result.ok:
            return MediaResponse(result.data, OUTPUT_CONTENT_TYPE, "miss")

        logger.warning(
            "Serving placeholder for %s after %s failed attempt(s): %s",
            source.name,
            len(result.failures),
            "; ".join(result.failures),
        )
        placeholder = placeholder_svg(source.name).encode("utf-8")
        return MediaResponse(placeholder, PLACEHOLDER_CONTENT_TYPE, "degraded")

    async def _derive_shared(
        self, key: str, source: Path, ext: str, width: int | None
    ) -> DecodeResult:
        # Concurrent requests for the same key await one derivation.
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._derive_and_store(key, source, ext, width))
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    async def _derive_and_store(
        self, key: str, source: Path, ext: str, width: int | None
    ) -> DecodeResult:
        result = await asyncio.to_thread(self.pipeline.derive, source, ext, width)
        if result.ok:
            await self.store.store(key, result.data)
        return result
