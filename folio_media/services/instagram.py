"""
Instagram Graph API client.
"""

import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from folio_media.domain.errors import ExternalServiceError
from folio_media.domain.models import InstagramMediaItem

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"
MEDIA_FIELDS = (
    "id",
    "media_type",
    "media_url",
    "thumbnail_url",
    "permalink",
    "caption",
    "timestamp",
    "like_count",
    "comments_count",
)
MAX_PAGE_SIZE = 100
MAX_PAGES = 10


class InstagramClient:
    """Reads the media feed of a single Instagram business account."""

    def __init__(
        self,
        access_token: Optional[str],
        ig_user_id: Optional[str],
        api_version: str = "v20.0",
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.ig_user_id = ig_user_id
        self.api_version = api_version
        self.timeout = timeout
        self.transport = transport

    @property
    def media_url(self) -> str:
        return f"{GRAPH_BASE_URL}/{self.api_version}/{self.ig_user_id}/media"

    async def fetch_media(self, limit: int = 60) -> List[InstagramMediaItem]:
        """Collect up to `limit` media items, following `after` cursors."""
        if not self.access_token:
            raise ExternalServiceError("instagram", "Missing env var: INSTAGRAM_ACCESS_TOKEN")
        if not self.ig_user_id:
            raise ExternalServiceError("instagram", "Missing env var: INSTAGRAM_IG_USER_ID")

        page_size = min(MAX_PAGE_SIZE, limit)
        collected: List[InstagramMediaItem] = []
        after: Optional[str] = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            # Page cap guards against cursors that never terminate.
            for _ in range(MAX_PAGES):
                if len(collected) >= limit:
                    break
                params = {
                    "fields": ",".join(MEDIA_FIELDS),
                    "limit": str(page_size),
                    "access_token": self.access_token,
                }
                if after:
                    params["after"] = after

                try:
                    response = await client.get(self.media_url, params=params)
                except httpx.HTTPError as exc:
                    raise ExternalServiceError("instagram", str(exc)) from exc
                if not response.is_success:
                    raise ExternalServiceError(
                        "instagram",
                        f"Instagram Graph API error: {response.status_code} {response.text}",
                    )

                try:
                    payload = response.json()
                except ValueError as exc:
                    raise ExternalServiceError("instagram", "Malformed media response") from exc
                for raw in payload.get("data") or []:
                    try:
                        collected.append(InstagramMediaItem.model_validate(raw))
                    except ValidationError as exc:
                        logger.warning("Skipping malformed media item %s: %s", raw.get("id"), exc)

                next_after = ((payload.get("paging") or {}).get("cursors") or {}).get("after")
                if not next_after or next_after == after:
                    break
                after = next_after

        return collected[:limit]
