import asyncio
import json
from typing import Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

from folio_media.app.api import create_app, parse_limit
from folio_media.domain.errors import ExternalServiceError
from folio_media.domain.models import CuratedPhoto, InstagramMediaItem, PeopleDetection
from folio_media.services.curation import CurationService, rank_candidates, source_limit_for
from folio_media.services.instagram import InstagramClient
from folio_media.services.vision import VisionClient, interpret_annotations


def _item(id_, likes=0, comments=0, ts="2024-01-01T00:00:00+0000", media_type="IMAGE", **extra):
    data = {
        "id": id_,
        "media_type": media_type,
        "media_url": f"https://cdn.example.com/{id_}.jpg",
        "permalink": f"https://instagram.com/p/{id_}",
        "timestamp": ts,
        "like_count": likes,
        "comments_count": comments,
    }
    data.update(extra)
    return InstagramMediaItem.model_validate(data)


class FakeInstagram:
    def __init__(self, items: List[InstagramMediaItem]):
        self.items = items
        self.requested: List[int] = []

    async def fetch_media(self, limit: int = 60):
        self.requested.append(limit)
        return self.items[:limit]


class FakeVision:
    def __init__(self, people: Dict[str, bool], failing=()):
        self.people = people
        self.failing = set(failing)
        self.calls: List[str] = []

    async def detect_people(self, image_url: str) -> PeopleDetection:
        self.calls.append(image_url)
        if image_url in self.failing:
            raise ExternalServiceError("vision", "quota exceeded")
        return PeopleDetection(contains_people=self.people.get(image_url, False))


class TestRanking:
    """Engagement ordering and eligibility."""

    def test_orders_by_engagement_then_recency(self):
        media = [
            _item("old", likes=10, ts="2023-01-01T00:00:00+0000"),
            _item("top", likes=50, comments=5),
            _item("new", likes=8, comments=2, ts="2024-06-01T00:00:00+0000"),
        ]
        assert [c.id for c in rank_candidates(media, set())] == ["top", "new", "old"]

    def test_skips_videos_missing_urls_and_blocked_ids(self):
        media = [
            _item("video", likes=99, media_type="VIDEO"),
            _item("nourl", likes=98, media_url=None),
            _item("blocked", likes=97),
            _item("carousel", likes=1, media_type="CAROUSEL_ALBUM"),
            _item("thumb", likes=2, media_url=None, thumbnail_url="https://cdn.example.com/t.jpg"),
        ]
        ranked = rank_candidates(media, {"blocked"})
        assert [c.id for c in ranked] == ["thumb", "carousel"]
        assert ranked[0].image_url == "https://cdn.example.com/t.jpg"
        assert ranked[0].engagement_score == 2

    def test_source_limit_bounds(self):
        assert source_limit_for(1) == 60
        assert source_limit_for(12) == 120
        assert source_limit_for(50) == 200


class TestCurationService:
    """People filtering with allow/block overrides."""

    def test_filters_people_and_respects_limit(self):
        media = [_item(str(i), likes=100 - i) for i in range(6)]
        vision = FakeVision({"https://cdn.example.com/0.jpg": True})
        service = CurationService(FakeInstagram(media), vision)

        curated = asyncio.run(service.list_curated_photos(3))

        assert [c.id for c in curated] == ["1", "2", "3"]
        assert len(vision.calls) == 4

    def test_force_allow_skips_detection_and_detection_failure_excludes(self):
        media = [_item("a", likes=3), _item("b", likes=2), _item("c", likes=1)]
        vision = FakeVision(
            {"https://cdn.example.com/a.jpg": True},
            failing={"https://cdn.example.com/b.jpg"},
        )
        service = CurationService(FakeInstagram(media), vision, force_allow_ids={"a"})

        curated = asyncio.run(service.list_curated_photos(5))

        assert [c.id for c in curated] == ["a", "c"]
        assert "https://cdn.example.com/a.jpg" not in vision.calls

    def test_results_are_memoised_per_limit(self):
        instagram = FakeInstagram([_item("a")])
        service = CurationService(instagram, FakeVision({}))
        asyncio.run(service.list_curated_photos(2))
        asyncio.run(service.list_curated_photos(2))
        asyncio.run(service.list_curated_photos(3))
        assert instagram.requested == [60, 60]


class TestVision:
    """Interpretation of annotate responses."""

    def test_faces_and_people_objects(self):
        result = interpret_annotations(
            {
                "faceAnnotations": [{}],
                "localizedObjectAnnotations": [{"name": "Person", "score": 0.9}],
            }
        )
        assert result.contains_people
        assert result.reasons == ["FACE_DETECTION", "OBJECT_LOCALIZATION:person"]

    def test_low_confidence_person_is_ignored(self):
        result = interpret_annotations(
            {"localizedObjectAnnotations": [{"name": "person", "score": 0.4}, {"name": "Tree"}]}
        )
        assert not result.contains_people
        assert result.reasons == []

    def test_response_error_raises(self):
        with pytest.raises(ExternalServiceError):
            interpret_annotations({"error": {"message": "bad image"}})

    def test_client_posts_features_and_memoises(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            assert request.url.params["key"] == "k"
            return httpx.Response(200, json={"responses": [{"faceAnnotations": [{}]}]})

        client = VisionClient("k", transport=httpx.MockTransport(handler))

        async def scenario():
            first = await client.detect_people("https://cdn.example.com/a.jpg")
            second = await client.detect_people("https://cdn.example.com/a.jpg")
            return first, second

        first, second = asyncio.run(scenario())
        assert first.contains_people and second.contains_people
        assert len(bodies) == 1
        features = [f["type"] for f in bodies[0]["requests"][0]["features"]]
        assert features == ["FACE_DETECTION", "OBJECT_LOCALIZATION"]

    def test_missing_api_key(self):
        with pytest.raises(ExternalServiceError):
            asyncio.run(VisionClient(None).detect_people("https://cdn.example.com/a.jpg"))


class TestInstagramClient:
    """Graph API pagination."""

    @staticmethod
    def _page(ids, after=None):
        payload = {
            "data": [
                {
                    "id": i,
                    "media_type": "IMAGE",
                    "media_url": f"https://cdn.example.com/{i}.jpg",
                    "permalink": f"https://instagram.com/p/{i}",
                    "timestamp": "2024-01-01T00:00:00+0000",
                }
                for i in ids
            ]
        }
        if after:
            payload["paging"] = {"cursors": {"after": after}}
        return payload

    def test_follows_cursors_until_limit(self):
        pages = {None: self._page(["1", "2"], "c1"), "c1": self._page(["3", "4"], "c2")}
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            after = request.url.params.get("after")
            seen.append((after, request.url.params["limit"]))
            return httpx.Response(200, json=pages[after])

        client = InstagramClient("token", "123", transport=httpx.MockTransport(handler))
        items = asyncio.run(client.fetch_media(limit=3))

        assert [i.id for i in items] == ["1", "2", "3"]
        assert seen == [(None, "3"), ("c1", "3")]

    def test_stops_when_cursor_repeats(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.params.get("after"))
            return httpx.Response(200, json=self._page([str(len(calls))], "same"))

        client = InstagramClient("token", "123", transport=httpx.MockTransport(handler))
        items = asyncio.run(client.fetch_media(limit=50))
        assert calls == [None, "same"]
        assert len(items) == 2

    def test_error_status_raises(self):
        client = InstagramClient(
            "token",
            "123",
            transport=httpx.MockTransport(lambda r: httpx.Response(400, text="bad token")),
        )
        with pytest.raises(ExternalServiceError):
            asyncio.run(client.fetch_media())

    def test_missing_credentials_raise(self):
        with pytest.raises(ExternalServiceError):
            asyncio.run(InstagramClient(None, "123").fetch_media())


class StaticCuration:
    def __init__(self, photos=None, error=None):
        self.photos = photos or []
        self.error = error
        self.limits: List[int] = []

    async def list_curated_photos(self, limit: int):
        self.limits.append(limit)
        if self.error:
            raise self.error
        return self.photos[:limit]


@pytest.mark.parametrize(
    "raw,expected",
    [(None, 12), ("5", 5), ("0", 1), ("500", 50), ("7.9", 7), ("abc", 12), ("inf", 12)],
)
def test_parse_limit(raw, expected):
    assert parse_limit(raw) == expected


def test_curated_endpoint(settings):
    photo = CuratedPhoto(
        id="1",
        image_url="https://cdn.example.com/1.jpg",
        permalink="https://instagram.com/p/1",
        timestamp="2024-01-01T00:00:00+0000",
        like_count=3,
        comments_count=1,
        engagement_score=4,
    )
    curation = StaticCuration([photo])
    with TestClient(create_app(settings, curation_service=curation)) as client:
        response = client.get("/api/instagram/curated", params={"limit": "100"})

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, max-age=3600"
    assert response.json()[0]["engagement_score"] == 4
    assert curation.limits == [50]


def test_curated_endpoint_upstream_failure(settings):
    curation = StaticCuration(error=ExternalServiceError("instagram", "token=secret expired"))
    with TestClient(create_app(settings, curation_service=curation)) as client:
        response = client.get("/api/instagram/curated")

    assert response.status_code == 502
    body = response.json()
    assert body["code"] == "upstream_error"
    assert "secret" not in body["detail"]


def test_vision_memo_drops_expired_detections():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"responses": [{}]})

    client = VisionClient("k", ttl_seconds=0, transport=httpx.MockTransport(handler))

    async def scenario():
        await client.detect_people("https://cdn.example.com/a.jpg")
        await client.detect_people("https://cdn.example.com/b.jpg")

    asyncio.run(scenario())
    assert list(client._memo) == ["https://cdn.example.com/b.jpg"]
