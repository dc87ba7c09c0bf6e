"""
Curation of Instagram photos: rank by engagement, drop photos with people.
"""

import logging
import time
from typing import Dict, Iterable, List, Optional, Set, Tuple

from folio_media.domain.errors import ExternalServiceError
from folio_media.domain.models import CuratedPhoto, InstagramMediaItem, InstagramMediaType
from folio_media.services.instagram import InstagramClient
from folio_media.services.vision import VisionClient

logger = logging.getLogger(__name__)

CURATION_TTL_SECONDS = 60 * 60 * 6
ALLOWED_MEDIA_TYPES = {InstagramMediaType.IMAGE, InstagramMediaType.CAROUSEL_ALBUM}


def source_limit_for(limit: int) -> int:
    return min(200, max(60, limit * 10))


def to_curated(item: InstagramMediaItem) -> Optional[CuratedPhoto]:
    image_url = item.media_url or item.thumbnail_url
    if not image_url:
        return None
    likes = item.like_count or 0
    comments = item.comments_count or 0
    return CuratedPhoto(
        id=item.id,
        image_url=image_url,
        permalink=item.permalink,
        caption=item.caption,
        timestamp=item.timestamp,
        like_count=likes,
        comments_count=comments,
        engagement_score=likes + comments,
    )


def rank_candidates(
    media: Iterable[InstagramMediaItem], blocked_ids: Set[str]
) -> List[CuratedPhoto]:
    """Eligible photos ordered by engagement, newest first on ties."""
    candidates = []
    for item in media:
        if item.media_type not in ALLOWED_MEDIA_TYPES:
            continue
        curated = to_curated(item)
        if curated is None or curated.id in blocked_ids:
            continue
        candidates.append(curated)

    # Two stable sorts: timestamp desc, then score desc.
    candidates.sort(key=lambda c: c.timestamp, reverse=True)
    candidates.sort(key=lambda c: c.engagement_score, reverse=True)
    return candidates


class CurationService:
    """Builds the curated photo list and memoises it per limit."""

    def __init__(
        self,
        instagram: InstagramClient,
        vision: VisionClient,
        *,
        force_allow_ids: Optional[Set[str]] = None,
        force_block_ids: Optional[Set[str]] = None,
        ttl_seconds: int = CURATION_TTL_SECONDS,
    ):
        self.instagram = instagram
        self.vision = vision
        self.force_allow_ids = force_allow_ids or set()
        self.force_block_ids = force_block_ids or set()
        self.ttl_seconds = ttl_seconds
        self._memo: Dict[int, Tuple[float, List[CuratedPhoto]]] = {}

    async def list_curated_photos(self, limit: int) -> List[CuratedPhoto]:
        now = time.monotonic()
        memo = self._memo.get(limit)
        if memo and memo[0] > now:
            return memo[1]

        media = await self.instagram.fetch_media(limit=source_limit_for(limit))
        candidates = rank_candidates(media, self.force_block_ids)

        curated: List[CuratedPhoto] = []
        for item in candidates:
            if len(curated) >= limit:
                break
            if item.id in self.force_allow_ids:
                curated.append(item)
                continue
            try:
                detection = await self.vision.detect_people(item.image_url)
            except ExternalServiceError as exc:
                # Privacy-safe default: exclude when detection fails.
                logger.error("People detection failed for Instagram media %s: %s", item.id, exc)
                continue
            if not detection.contains_people:
                curated.append(item)

        self._memo[limit] = (now + self.ttl_seconds, curated)
        logger.info("Curated %s of %s Instagram candidates", len(curated), len(candidates))
        return curated
