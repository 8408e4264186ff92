"""Maintenance jobs: expired-record eviction and bulk cache preload.

Both jobs are safe to run repeatedly and concurrently with live traffic.

Flow Diagram — cleanup_expired()
================================
::
    delete_expired() ──► purge.short_codes ──► cache.delete(code) for each
                                        │
                                        └─ CacheError: logged, skipped

Flow Diagram — preload_cache(limit)
===================================
::
    list_active_by_popularity(limit) ──► cache.set(code, url, ttl) for each
                                           │
                                           ├─ under 1s left: skipped
                                           └─ CacheError: logged, skipped
"""

import logging

from prometheus_client import Counter

from linkly.cache import Cache, entry_ttl
from linkly.config import Settings
from linkly.exceptions import CacheError, ValidationError
from linkly.store import UrlStore

__all__ = ["MaintenanceService", "evict_record"]

EXPIRED_RECORDS_DELETED_TOTAL = Counter(
    "linkly_expired_records_deleted_total",
    "Expired URL records physically deleted",
    ["trigger"],
)
CACHE_PRELOADED_TOTAL = Counter(
    "linkly_cache_preloaded_total",
    "URL records loaded into the cache by preload jobs",
)


async def evict_record(
    store: UrlStore,
    cache: Cache,
    short_code: str,
    logger: logging.Logger | logging.LoggerAdapter,
) -> None:
    """Delete one record from the store, then best-effort from the cache."""
    await store.delete_by_code(short_code)
    EXPIRED_RECORDS_DELETED_TOTAL.labels(trigger="lazy").inc()
    try:
        await cache.delete(short_code)
    except CacheError as exc:
        logger.warning(f"Failed to evict {short_code} from cache: {exc}")


class MaintenanceService:
    def __init__(
        self,
        store: UrlStore,
        cache: Cache,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter,
    ) -> None:
        self._store = store
        self._cache = cache
        self._settings = settings
        self._logger = logger

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "MaintenanceService":
        return cls(ctx.store, ctx.cache, ctx.settings, ctx.logger)

    async def cleanup_expired(self) -> int:
        """Delete every expired record and return how many were removed.

        Raises:
            StorageError: If the store cannot run the delete
        """
        purge = await self._store.delete_expired()
        for short_code in purge.short_codes:
            try:
                await self._cache.delete(short_code)
            except CacheError as exc:
                self._logger.warning(f"Failed to evict {short_code} from cache: {exc}")

        EXPIRED_RECORDS_DELETED_TOTAL.labels(trigger="cleanup").inc(purge.deleted_count)
        self._logger.info(f"Cleanup removed {purge.deleted_count} expired URLs")
        return purge.deleted_count

    async def preload_cache(self, limit: int | None = None) -> int:
        """Load the ``limit`` most clicked live records into the cache.

        Returns:
            int: Number of records actually written to the cache
        """
        if limit is None:
            limit = self._settings.PRELOAD_DEFAULT_LIMIT
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValidationError("limit must be a positive integer")

        records = await self._store.list_active_by_popularity(limit)
        loaded = 0
        for record in records:
            ttl = entry_ttl(self._settings.CACHE_TTL_SECONDS, record.expires_at)
            if ttl is None:
                continue
            try:
                await self._cache.set(record.short_code, record.original_url, ttl)
            except CacheError as exc:
                self._logger.warning(f"Failed to preload {record.short_code}: {exc}")
                continue
            loaded += 1

        CACHE_PRELOADED_TOTAL.inc(loaded)
        self._logger.info(f"Preloaded {loaded} of {len(records)} URLs into cache")
        return loaded
