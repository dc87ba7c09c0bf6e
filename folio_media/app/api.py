"""FastAPI application serving portfolio photos."""

import logging
import math
import secrets
import time
from typing import Any, List, Mapping, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from folio_media.adapters.artifact_store import ArtifactStore
from folio_media.config import Settings
from folio_media.domain.errors import ExternalServiceError, MediaError
from folio_media.domain.models import CuratedPhoto, LocalPhoto
from folio_media.security.problem_details import problem_response
from folio_media.services.cache_keys import parse_width
from folio_media.services.curation import CurationService
from folio_media.services.instagram import InstagramClient
from folio_media.services.media_service import MediaRequest, MediaService
from folio_media.services.photo_library import list_local_photos
from folio_media.services.pipeline import MediaPipeline
from folio_media.services.vision import VisionClient

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}
CURATED_CACHE_CONTROL = "public, max-age=3600"
DEFAULT_CURATED_LIMIT = 12
PHOTOS_PREFIX = "/api/photos/"
MAX_CURATED_LIMIT = 50

router = APIRouter()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_media_service(request: Request) -> MediaService:
    return request.app.state.media_service


def get_curation_service(request: Request) -> CurationService:
    return request.app.state.curation_service


def _correlation_id(request: Request) -> Optional[str]:
    return getattr(request.state, "correlation_id", None)


def raw_path_segments(request: Request) -> List[str]:
    """Still-encoded path segments after `/api/photos/`, decoded later one by one."""
    raw_path = request.scope.get("raw_path")
    if raw_path is None:
        raw_path = quote(request.scope["path"]).encode("ascii")
    path = raw_path.decode("latin-1").split("?", 1)[0]
    _, _, tail = path.partition(PHOTOS_PREFIX)
    return tail.split("/")


def parse_limit(raw: Optional[str]) -> int:
    """Clamp the curated `limit` parameter into [1, 50]; default 12."""
    if raw is None:
        return DEFAULT_CURATED_LIMIT
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_CURATED_LIMIT
    if not math.isfinite(value):
        return DEFAULT_CURATED_LIMIT
    return min(MAX_CURATED_LIMIT, max(1, math.floor(value)))


async def request_context_middleware(request: Request, call_next):
    """Attach a correlation id, log the request and add security headers."""
    correlation_id = request.headers.get("X-Correlation-ID") or secrets.token_urlsafe(16)
    request.state.correlation_id = correlation_id
    started = time.perf_counter()

    response = await call_next(request)

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s %s -> %s (%.1f ms) cid=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        correlation_id,
    )
    for header, value in SECURITY_HEADERS.items():
        response.headers[header] = value
    response.headers.setdefault("X-Correlation-ID", correlation_id)
    return response


async def media_error_handler(request: Request, exc: MediaError):
    logger.warning("Media error: %s - %s for %s", exc.code, exc.message, request.url.path)
    return problem_response(
        status=exc.status,
        title=exc.title,
        detail=exc.message,
        code=exc.code,
        instance=str(request.url.path),
        correlation_id=_correlation_id(request),
    )


async def external_service_error_handler(request: Request, exc: ExternalServiceError):
    # Upstream messages may embed credentials in URLs; keep them in the log only.
    logger.warning("Upstream failure (%s): %s", exc.service, exc.message)
    return problem_response(
        status=502,
        title="Upstream service error",
        detail=f"Failed to fetch data from {exc.service}",
        code="upstream_error",
        instance=str(request.url.path),
        correlation_id=_correlation_id(request),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _http_problem_response(
        request,
        status=exc.status_code,
        detail=exc.detail,
        headers=exc.headers,
    )


async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception: %s: %s for %s",
        type(exc).__name__,
        exc,
        request.url,
        exc_info=True,
    )
    return problem_response(
        status=500,
        title="Internal server error",
        detail="Internal server error",
        code="internal_error",
        instance=str(request.url.path),
        correlation_id=_correlation_id(request),
    )


def _http_problem_response(
    request: Request,
    *,
    status: int,
    detail: Any,
    headers: Mapping[str, str] | None,
):
    """Normalize HTTP exceptions to RFC 7807."""
    normalized_detail = detail if isinstance(detail, str) else "HTTP error"
    title = "HTTP error"
    code = "http_error"
    if status == 404:
        title = "Resource not found"
        normalized_detail = "Requested resource was not found"
        code = "not_found"
    elif status == 405:
        title = "Method not allowed"
        code = "method_not_allowed"
    logger.warning("HTTP Error: %s - %s for %s", status, normalized_detail, request.url)
    return problem_response(
        status=status,
        title=title,
        detail=normalized_detail,
        code=code,
        headers=headers,
        instance=str(request.url.path),
        correlation_id=_correlation_id(request),
    )


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/api/photos", response_model=List[LocalPhoto])
def list_photos(settings: Settings = Depends(get_settings)):
    """List photos in the images directory with thumbnail/viewer/raw URLs."""
    return list_local_photos(
        settings.IMAGES_DIR,
        version=settings.PHOTO_API_VERSION,
        thumb_width=settings.PHOTO_THUMB_WIDTH,
        viewer_width=settings.PHOTO_VIEWER_WIDTH,
    )


@router.get("/api/photos/{path:path}")
async def get_photo(
    request: Request,
    raw: Optional[str] = Query(None),
    v: str = Query(""),
    w: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
    media_service: MediaService = Depends(get_media_service),
):
    """Serve a photo: derived WebP, raw bytes, or a placeholder SVG."""
    media_request = MediaRequest(
        segments=raw_path_segments(request),
        width=parse_width(w, settings.PHOTO_MIN_WIDTH, settings.PHOTO_MAX_WIDTH),
        version=v,
        raw=raw == "1",
    )
    result = await media_service.serve(media_request)
    return Response(
        content=result.body,
        media_type=result.media_type,
        headers={
            "Cache-Control": settings.CACHE_CONTROL,
            "X-Media-Cache": result.cache_status,
        },
    )


@router.get("/api/instagram/curated", response_model=List[CuratedPhoto])
async def curated_instagram_photos(
    response: Response,
    limit: Optional[str] = Query(None),
    curation_service: CurationService = Depends(get_curation_service),
):
    """Top Instagram photos by engagement, excluding photos with people."""
    photos = await curation_service.list_curated_photos(parse_limit(limit))
    response.headers["Cache-Control"] = CURATED_CACHE_CONTROL
    return photos


def create_app(
    settings: Optional[Settings] = None,
    *,
    pipeline: Optional[MediaPipeline] = None,
    curation_service: Optional[CurationService] = None,
) -> FastAPI:
    """Build the application and its process-scoped services."""
    settings = settings or Settings()
    logging.basicConfig(level=settings.LOG_LEVEL)

    app = FastAPI(title="Folio Media API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_context_middleware)

    app.add_exception_handler(MediaError, media_error_handler)
    app.add_exception_handler(ExternalServiceError, external_service_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    pipeline = pipeline or MediaPipeline(
        quality=settings.PHOTO_QUALITY,
        transcode_quality=settings.HEIF_TRANSCODE_QUALITY,
    )
    app.state.settings = settings
    app.state.media_service = MediaService(
        settings.IMAGES_DIR,
        ArtifactStore(settings.PHOTO_CACHE_DIR),
        pipeline,
    )
    app.state.curation_service = curation_service or CurationService(
        InstagramClient(
            settings.INSTAGRAM_ACCESS_TOKEN,
            settings.INSTAGRAM_IG_USER_ID,
            settings.INSTAGRAM_GRAPH_API_VERSION,
        ),
        VisionClient(settings.GOOGLE_CLOUD_VISION_API_KEY),
        force_allow_ids=settings.force_allow_ids,
        force_block_ids=settings.force_block_ids,
    )

    app.include_router(router)
    logger.info("Serving photos from %s (cache: %s)", settings.IMAGES_DIR, settings.PHOTO_CACHE_DIR)
    return app


app = create_app()
