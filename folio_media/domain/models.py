"""
Domain models for the media service.
"""

import enum
from typing import List, Optional

from pydantic import BaseModel, Field


class InstagramMediaType(str, enum.Enum):
    """Media types returned by the Graph API."""

    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    CAROUSEL_ALBUM = "CAROUSEL_ALBUM"


class LocalPhoto(BaseModel):
    """A photo from the local images directory, with its API URLs."""

    id: str
    src: str
    viewer_src: str
    raw_src: str
    width: int
    height: int
    alt: str


class InstagramMediaItem(BaseModel):
    """Raw media item as returned by the Graph API."""

    id: str
    media_type: InstagramMediaType
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    permalink: str
    caption: Optional[str] = None
    timestamp: str
    like_count: Optional[int] = None
    comments_count: Optional[int] = None


class CuratedPhoto(BaseModel):
    """Instagram photo that survived ranking and filtering."""

    id: str
    image_url: str
    permalink: str
    caption: Optional[str] = None
    timestamp: str
    like_count: int = 0
    comments_count: int = 0
    engagement_score: int = 0


class PeopleDetection(BaseModel):
    """Outcome of people detection on a single image."""

    contains_people: bool
    reasons: List[str] = Field(default_factory=list)


class CacheStats(BaseModel):
    files: int = Field(0, ge=0)
    total_bytes: int = Field(0, ge=0)
