"""
People detection through the Google Cloud Vision REST API.
"""

import logging
import time
from typing import Dict, Optional, Tuple

import httpx

from folio_media.domain.errors import ExternalServiceError
from folio_media.domain.models import PeopleDetection

logger = logging.getLogger(__name__)

ANNOTATE_URL = "https://vision.googleapis.com/v1/images:annotate"
PERSON_SCORE_THRESHOLD = 0.5
# Weekly revalidation keeps Vision cost down and results stable.
DETECTION_TTL_SECONDS = 60 * 60 * 24 * 7


def interpret_annotations(response: dict) -> PeopleDetection:
    """Decide whether a single annotate response shows people."""
    error_message = (response.get("error") or {}).get("message")
    if error_message:
        raise ExternalServiceError("vision", f"Google Vision API response error: {error_message}")

    reasons = []
    if response.get("faceAnnotations"):
        reasons.append("FACE_DETECTION")

    people = [
        obj
        for obj in response.get("localizedObjectAnnotations") or []
        if (obj.get("name") or "").lower() == "person"
        and (obj.get("score") or 0) >= PERSON_SCORE_THRESHOLD
    ]
    if people:
        reasons.append("OBJECT_LOCALIZATION:person")

    return PeopleDetection(contains_people=bool(reasons), reasons=reasons)


class VisionClient:
    """Thin async wrapper over `images:annotate` with a per-URL memo."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        ttl_seconds: int = DETECTION_TTL_SECONDS,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self.transport = transport
        self._memo: Dict[str, Tuple[float, PeopleDetection]] = {}

    async def detect_people(self, image_url: str) -> PeopleDetection:
        now = time.monotonic()
        memo = self._memo.get(image_url)
        if memo and memo[0] > now:
            return memo[1]

        if not self.api_key:
            raise ExternalServiceError("vision", "Missing env var: GOOGLE_CLOUD_VISION_API_KEY")

        body = {
            "requests": [
                {
                    "image": {"source": {"imageUri": image_url}},
                    "features": [{"type": "FACE_DETECTION"}, {"type": "OBJECT_LOCALIZATION"}],
                }
            ]
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(ANNOTATE_URL, params={"key": self.api_key}, json=body)
            except httpx.HTTPError as exc:
                raise ExternalServiceError("vision", str(exc)) from exc

        if not response.is_success:
            raise ExternalServiceError(
                "vision", f"Google Vision API error: {response.status_code} {response.text}"
            )

        try:
            responses = response.json().get("responses") or [{}]
        except ValueError as exc:
            raise ExternalServiceError("vision", "Malformed annotate response") from exc
        detection = interpret_annotations(responses[0])
        self._remember(image_url, detection, now)
        return detection

    def _remember(self, image_url: str, detection: PeopleDetection, now: float) -> None:
        self._memo = {url: entry for url, entry in self._memo.items() if entry[0] > now}
        self._memo[image_url] = (now + self.ttl_seconds, detection)
