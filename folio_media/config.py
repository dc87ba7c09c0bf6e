"""
Application settings loaded from the environment (and an optional .env file).
"""

from pathlib import Path
from typing import List, Optional, Set

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Media storage
    IMAGES_DIR: Path = Path("images")
    PHOTO_CACHE_DIR: Path = Path(".cache/photos")

    # Derivation policy
    PHOTO_MIN_WIDTH: int = 200
    PHOTO_MAX_WIDTH: int = 2400
    PHOTO_QUALITY: int = 85
    HEIF_TRANSCODE_QUALITY: int = 92
    CACHE_CONTROL: str = "public, max-age=31536000, s-maxage=31536000, immutable"

    # Photo listing. Bump the version when output shape/params change.
    PHOTO_API_VERSION: int = 5
    PHOTO_THUMB_WIDTH: int = 600
    PHOTO_VIEWER_WIDTH: int = 2400

    # Instagram Graph API
    INSTAGRAM_ACCESS_TOKEN: Optional[str] = None
    INSTAGRAM_IG_USER_ID: Optional[str] = None
    INSTAGRAM_GRAPH_API_VERSION: str = "v20.0"
    INSTAGRAM_FORCE_ALLOW_IDS: str = ""
    INSTAGRAM_FORCE_BLOCK_IDS: str = ""

    # Google Cloud Vision
    GOOGLE_CLOUD_VISION_API_KEY: Optional[str] = None

    # Service
    LOG_LEVEL: str = "INFO"
    CORS_ALLOW_ORIGINS: str = "http://localhost:3000"

    @property
    def force_allow_ids(self) -> Set[str]:
        return set(_split_csv(self.INSTAGRAM_FORCE_ALLOW_IDS))

    @property
    def force_block_ids(self) -> Set[str]:
        return set(_split_csv(self.INSTAGRAM_FORCE_BLOCK_IDS))

    @property
    def cors_origins(self) -> List[str]:
        return _split_csv(self.CORS_ALLOW_ORIGINS)
