"""FastAPI route definitions for the Linkly REST API.

This module is a thin HTTP layer over the pipelines: it shapes requests and
responses and maps outcomes to status codes. Every route is also reachable
under the ``/api`` prefix.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200 healthy / 503 degraded)

    POST /shorten
        ├─ URLCreate (request body)
        └─ ShortenResponse (201) or 400/422

    GET  /stats/:short_code
        └─ URLStats (200) or 400/404

    POST /admin/cleanup
        └─ CleanupResponse (200)

    POST /admin/preload-cache
        ├─ PreloadRequest (optional body)
        └─ PreloadResponse (200)

    GET  /:short_code
        └─ 302 Redirect or 400/404

Key Behaviours
===============
- ``ValidationError`` maps to 400, ``NotFoundError`` to 404 and
  ``StorageError`` to 500 (see main.py).
- Short codes are format-checked before any lookup.
- The redirect route is registered last so it never shadows fixed paths.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import RedirectResponse

from linkly.codec import is_valid_code
from linkly.dependencies import (
    RequestContext,
    get_maintenance_service,
    get_redirect_service,
    get_request_context,
    get_url_service,
)
from linkly.enums import HealthStatus, ServiceStatus
from linkly.exceptions import CacheError, NotFoundError
from linkly.maintenance import MaintenanceService
from linkly.models import as_utc, utcnow
from linkly.redirect_service import RedirectService
from linkly.schemas import (
    CacheStatsResponse,
    CleanupResponse,
    HealthResponse,
    PreloadRequest,
    PreloadResponse,
    ServicesHealth,
    ShortenResponse,
    URLCreate,
    URLStats,
)
from linkly.url_service import UrlService

__all__ = ["router"]

router = APIRouter()


def _check_code_format(ctx: RequestContext, short_code: str) -> None:
    if not is_valid_code(short_code, ctx.settings.MAX_SHORT_CODE_LENGTH):
        raise HTTPException(status_code=400, detail="Invalid short code format")


@router.get("/health", response_model=HealthResponse, tags=["health"])
@router.get("/api/health", response_model=HealthResponse, tags=["health"], include_in_schema=False)
async def health_check(response: Response, ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    database_ok = await ctx.store.health_check()
    cache_ok = await ctx.cache.health_check()

    cache_stats = None
    if cache_ok:
        try:
            stats = await ctx.cache.stats()
            cache_stats = CacheStatsResponse(hit_ratio=stats.hit_ratio, total_keys=stats.total_keys)
        except CacheError as exc:
            ctx.logger.warning(f"Cache stats unavailable: {exc}")

    status = HealthStatus.HEALTHY if database_ok and cache_ok else HealthStatus.DEGRADED
    if status is HealthStatus.DEGRADED:
        response.status_code = 503
    ctx.logger.info(f"Health check completed: {status.value}")

    return HealthResponse(
        status=status,
        timestamp=utcnow(),
        services=ServicesHealth(
            database=ServiceStatus.from_bool(database_ok),
            cache=ServiceStatus.from_bool(cache_ok),
        ),
        cache=cache_stats,
    )


@router.post("/shorten", response_model=ShortenResponse, status_code=201, tags=["urls"])
@router.post("/api/shorten", response_model=ShortenResponse, status_code=201, tags=["urls"], include_in_schema=False)
async def shorten_url(
    payload: URLCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: UrlService = Depends(get_url_service),
) -> ShortenResponse:
    result = await service.create_short_url(payload.url, payload.expires_at)
    duration_ms = ctx.get_duration()
    ctx.logger.info(
        f"Shorten request served: {result.short_code} (new={result.is_new}) in {duration_ms:.1f}ms",
        extra={"duration_ms": duration_ms},
    )
    return ShortenResponse(
        short_url=result.short_url,
        short_code=result.short_code,
        original_url=result.original_url,
        is_new=result.is_new,
    )


@router.get("/stats/{short_code}", response_model=URLStats, tags=["urls"])
@router.get("/api/stats/{short_code}", response_model=URLStats, tags=["urls"], include_in_schema=False)
async def get_stats(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: UrlService = Depends(get_url_service),
) -> URLStats:
    _check_code_format(ctx, short_code)
    record = await service.get_stats(short_code)
    if record is None:
        raise NotFoundError(short_code)

    return URLStats(
        short_code=record.short_code,
        original_url=record.original_url,
        click_count=record.click_count,
        created_at=as_utc(record.created_at),
        expires_at=as_utc(record.expires_at),
    )


@router.post("/admin/cleanup", response_model=CleanupResponse, tags=["admin"])
@router.post("/api/admin/cleanup", response_model=CleanupResponse, tags=["admin"], include_in_schema=False)
async def cleanup_expired(service: MaintenanceService = Depends(get_maintenance_service)) -> CleanupResponse:
    deleted = await service.cleanup_expired()
    return CleanupResponse(deleted_count=deleted)


@router.post("/admin/preload-cache", response_model=PreloadResponse, tags=["admin"])
@router.post("/api/admin/preload-cache", response_model=PreloadResponse, tags=["admin"], include_in_schema=False)
async def preload_cache(
    payload: PreloadRequest | None = None,
    service: MaintenanceService = Depends(get_maintenance_service),
) -> PreloadResponse:
    loaded = await service.preload_cache(payload.limit if payload else None)
    return PreloadResponse(loaded_count=loaded)


@router.get("/{short_code}", tags=["redirect"])
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: RedirectService = Depends(get_redirect_service),
) -> RedirectResponse:
    _check_code_format(ctx, short_code)
    original_url = await service.resolve(short_code)
    if original_url is None:
        ctx.logger.info(f"Redirect failed - short code not found or expired: {short_code}")
        raise NotFoundError(short_code, "URL not found or expired")

    duration_ms = ctx.get_duration()
    ctx.logger.debug(
        f"Redirect {short_code} -> {original_url} in {duration_ms:.1f}ms",
        extra={"duration_ms": duration_ms},
    )
    return RedirectResponse(url=original_url, status_code=ctx.settings.REDIRECT_STATUS_CODE)
