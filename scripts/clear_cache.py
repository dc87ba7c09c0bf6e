#!/usr/bin/env python3
"""
Remove derived photos from the on-disk cache.

The cache has no automatic eviction; run this after deleting sources or
when the cache directory grows too large.
"""

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from folio_media.adapters.artifact_store import ArtifactStore  # noqa: E402
from folio_media.config import Settings  # noqa: E402

logger = logging.getLogger("clear_cache")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--cache-dir", type=Path, help="Override PHOTO_CACHE_DIR")
    parser.add_argument("--dry-run", action="store_true", help="Only report cache size")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    store = ArtifactStore(args.cache_dir or Settings().PHOTO_CACHE_DIR)

    stats = store.stats()
    logger.info("%s artifacts, %s bytes in %s", stats.files, stats.total_bytes, store.cache_dir)
    if args.dry_run:
        return 0
    store.clear()
    return 0


if __name__ == "__main__":
    sys.exit(main())
