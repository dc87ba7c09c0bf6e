"""
On-disk store for derived images, addressed by cache key.

Files live flat under the cache root as `<key>.webp`. Reads treat every
error as a miss; writes are best-effort and atomic (temp file + rename).
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from folio_media.domain.models import CacheStats
from folio_media.services.formats import OUTPUT_EXTENSION

logger = logging.getLogger(__name__)


class CacheWriteFailed(Exception):
    """Persisting a derived artifact failed."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"cache write failed for {key}: {reason}")


class ArtifactStore:
    """Maps cache keys to derived image bytes on local disk."""

    def __init__(self, cache_dir: str | os.PathLike[str], suffix: str = OUTPUT_EXTENSION):
        self.cache_dir = Path(cache_dir)
        self.suffix = suffix

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}{self.suffix}"

    async def lookup(self, key: str) -> bytes | None:
        """Return cached bytes for `key`, or None on any read error."""
        try:
            return await asyncio.to_thread(self.path_for(key).read_bytes)
        except OSError:
            return None

    async def store(self, key: str, data: bytes) -> bool:
        """Persist `data` under `key`. Returns False instead of raising."""
        try:
            await asyncio.to_thread(self._write_atomic, key, data)
        except CacheWriteFailed as exc:
            logger.warning("Best-effort cache write skipped: %s", exc)
            return False
        return True

    def _write_atomic(self, key: str, data: bytes) -> None:
        target = self.path_for(key)
        tmp_name: str | None = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.cache_dir)
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, target)
            tmp_name = None
        except OSError as exc:
            raise CacheWriteFailed(key, str(exc)) from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def _entries(self) -> list[Path]:
        try:
            return [p for p in self.cache_dir.iterdir() if p.is_file() and p.suffix == self.suffix]
        except OSError:
            return []

    def stats(self) -> CacheStats:
        files = self._entries()
        total = 0
        for path in files:
            try:
                total += path.stat().st_size
            except OSError:
                continue
        return CacheStats(files=len(files), total_bytes=total)

    def clear(self) -> int:
        """Remove every cached artifact. Returns the number of files deleted."""
        removed = 0
        for path in self._entries():
            try:
                path.unlink()
                removed += 1
            except OSError as exc:
                logger.warning("Could not remove cached artifact %s: %s", path, exc)
        logger.info("Cleared %s cached artifacts from %s", removed, self.cache_dir)
        return removed
