"""Read pipeline: cache-first resolution of short codes.

Flow Diagram — resolve()
========================
::
    ┌─────────────┐
    │ resolve(code)│
    └──────┬──────┘
           ▼
    ┌─────────────┐   CacheError
    │ cache.get   │──────────────┐ (treated as miss)
    └──────┬──────┘              │
    HIT?   │                     │
    ┌──────┴─────┐               │
    │ YES        │ NO ◄──────────┘
    ▼            ▼
┌─────────┐  ┌──────────────┐
│ spawn   │  │ store.       │──── StorageError ──► propagates
│ +1 click│  │ find_by_code │
│ return  │  └──────┬───────┘
└─────────┘         ▼
             absent? ──► None
                    ▼
             expired? ──► spawn delete, None
                    ▼
             ┌──────────────┐
             │ spawn warm   │──── CacheError logged
             │ spawn +1     │
             │ return url   │
             └──────────────┘

Key Behaviours
===============
- Click accounting, cache warming and expired-record deletion are never
  awaited.
- A broken or slow cache only costs latency; it never fails a redirect.
- A broken store fails cache misses with ``StorageError`` (HTTP 500).
- Concurrent redirects for one code each issue their own atomic increment.

Classes:
    RedirectService:  Cache-first short code resolution.
"""

import datetime
import logging
import time

from prometheus_client import Counter, Histogram

from linkly.background import BackgroundTasks
from linkly.cache import Cache, entry_ttl
from linkly.config import Settings
from linkly.enums import CacheStatus, RequestStatus
from linkly.exceptions import CacheError
from linkly.maintenance import evict_record
from linkly.store import UrlStore

__all__ = ["RedirectService"]

URL_LOOKUP_REQUESTS_TOTAL = Counter(
    "linkly_lookup_requests_total",
    "Total URL lookup requests",
    ["status", "cache_hit"],
)
URL_LOOKUP_DURATION = Histogram(
    "linkly_lookup_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)
CACHE_DEGRADED_TOTAL = Counter(
    "linkly_cache_degraded_total",
    "Cache operations that failed and fell back",
    ["operation"],
)


class RedirectService:
    """Resolves short codes to target URLs.

    Example:
        >>> service = RedirectService(store, cache, tasks, settings, logger)
        >>> await service.resolve("1")
        'https://example.com/a'
    """

    def __init__(
        self,
        store: UrlStore,
        cache: Cache,
        tasks: BackgroundTasks,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter,
    ) -> None:
        self._store = store
        self._cache = cache
        self._tasks = tasks
        self._settings = settings
        self._logger = logger

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "RedirectService":
        return cls(ctx.store, ctx.cache, ctx.tasks, ctx.settings, ctx.logger)

    async def resolve(self, short_code: str) -> str | None:
        """Return the target URL for ``short_code``, or None if unknown or expired.

        Raises:
            StorageError: If the cache misses and the store fails
        """
        start_time = time.perf_counter()
        try:
            cached_url = await self._cache_lookup(short_code)
            if cached_url is not None:
                self._count_click(short_code)
                URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.HIT).inc()
                self._logger.debug(f"Cache hit for {short_code}")
                return cached_url

            record = await self._store.find_by_code(short_code)
            if record is None:
                URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache_hit=CacheStatus.MISS).inc()
                return None

            if record.is_expired():
                self._logger.info(f"Short code {short_code} expired; scheduling removal")
                self._tasks.spawn(
                    f"delete_expired:{short_code}",
                    evict_record(self._store, self._cache, short_code, self._logger),
                )
                URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.EXPIRED, cache_hit=CacheStatus.MISS).inc()
                return None

            original_url = record.original_url
            self._tasks.spawn(
                f"warm_cache:{short_code}",
                self._warm_cache(short_code, original_url, record.expires_at),
            )
            self._count_click(short_code)
            URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.MISS).inc()
            self._logger.debug(f"Store hit for {short_code}, warming cache")
            return original_url
        finally:
            URL_LOOKUP_DURATION.observe(time.perf_counter() - start_time)

    async def _cache_lookup(self, short_code: str) -> str | None:
        try:
            return await self._cache.get(short_code)
        except CacheError as exc:
            CACHE_DEGRADED_TOTAL.labels(operation="get").inc()
            self._logger.warning(f"Cache lookup failed, falling back to database: {exc}")
            return None

    async def _warm_cache(
        self,
        short_code: str,
        original_url: str,
        expires_at: datetime.datetime | None,
    ) -> None:
        ttl = entry_ttl(self._settings.CACHE_TTL_SECONDS, expires_at)
        if ttl is None:
            return
        try:
            await self._cache.set(short_code, original_url, ttl)
        except CacheError as exc:
            CACHE_DEGRADED_TOTAL.labels(operation="set").inc()
            self._logger.warning(f"Failed to warm cache for {short_code}: {exc}")

    def _count_click(self, short_code: str) -> None:
        self._tasks.spawn(f"increment_clicks:{short_code}", self._store.increment_clicks(short_code))
