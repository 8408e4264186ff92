"""Cache adapters for short code → URL lookups.

The cache is best-effort and volatile: an entry may vanish at any time
(TTL, eviction, restart) and absence only means "unknown". It is never the
source of truth, so every failure surfaces as ``CacheError`` for the caller
to log and fall back on the store.

Flow Diagram — RedisCache.get()
===============================
::
    ┌─────────────┐
    │ get(code)   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ GET url:code│──── timeout / RedisError ──► CacheError
    └──────┬──────┘
    HIT?   │
    ┌──────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ None    │  │ URL str │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Build from settings**::
    cache = build_cache(settings)

**Step 2 — Read / write**::
    await cache.set("21", "https://example.com", ttl_seconds=86400)
    url = await cache.get("21")

**Step 3 — Cleanup on shutdown**::
    await cache.close()

Key Behaviours
===============
- Redis keys are namespaced as ``{CACHE_KEY_PREFIX}:{short_code}``.
- Every Redis call is bounded by ``CACHE_TIMEOUT_SECONDS``.
- Entries for expiring records are written with ``entry_ttl`` so a cache
  hit can never serve a record past its expiry. Records with under a
  second left are not cached at all.
- ``InMemoryCache`` is the in-process binding used by tests and
  ``CACHE_BACKEND=memory``; it honours TTLs lazily on access.

Classes:
    CacheStats:  Hit ratio and key count snapshot.
    Cache:  Abstract interface consumed by the pipelines.
    RedisCache:  redis.asyncio implementation.
    InMemoryCache:  Dict-backed implementation.
"""

import asyncio
import datetime
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from linkly.config import Settings
from linkly.exceptions import CacheError
from linkly.models import as_utc, utcnow

__all__ = ["CacheStats", "Cache", "RedisCache", "InMemoryCache", "build_cache", "entry_ttl"]

logger = logging.getLogger("linkly.cache")

T = TypeVar("T")


@dataclass(frozen=True)
class CacheStats:
    hit_ratio: float
    total_keys: int


def _ratio(hits: int, misses: int) -> float:
    total = hits + misses
    return round(hits / total, 4) if total else 0.0


def entry_ttl(
    default_ttl: int,
    expires_at: datetime.datetime | None,
    now: datetime.datetime | None = None,
) -> int | None:
    """Return the TTL for a cache entry, never outliving the record's expiry.

    The remaining lifetime is rounded down to whole seconds. Returns None when
    less than one second is left; such records must not be cached.
    """
    if expires_at is None:
        return default_ttl
    remaining = int((as_utc(expires_at) - (now or utcnow())).total_seconds())
    if remaining < 1:
        return None
    return min(default_ttl, remaining)


class Cache(ABC):
    """Interface for the volatile short code cache.

    ``get``, ``set`` and ``delete`` raise ``CacheError`` on failure;
    ``health_check`` never raises.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the cached value for ``key``, or None when unknown."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``, overwriting any entry."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Drop ``key``. Deleting a missing key is a no-op."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the cache answers a ping."""

    @abstractmethod
    async def stats(self) -> CacheStats:
        """Return the current hit ratio and key count."""

    async def close(self) -> None:
        return None


class RedisCache(Cache):
    """``Cache`` backed by a redis.asyncio client.

    Example:
        >>> client = redis.from_url("redis://localhost:6379/0", decode_responses=True)
        >>> cache = RedisCache(client, prefix="url", timeout=0.5)
        >>> await cache.set("21", "https://example.com", ttl_seconds=60)
    """

    def __init__(self, client: redis.Redis, prefix: str = "url", timeout: float = 0.5) -> None:
        self._client = client
        self._prefix = prefix
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisCache":
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.CACHE_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.CACHE_TIMEOUT_SECONDS,
        )
        return cls(client, prefix=settings.CACHE_KEY_PREFIX, timeout=settings.CACHE_TIMEOUT_SECONDS)

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> str | None:
        return await self._call("get", lambda: self._client.get(self._key(key)))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._call("set", lambda: self._client.set(self._key(key), value, ex=ttl_seconds))

    async def delete(self, key: str) -> None:
        await self._call("delete", lambda: self._client.delete(self._key(key)))

    async def health_check(self) -> bool:
        try:
            return bool(await self._call("ping", self._client.ping))
        except CacheError as exc:
            logger.error(f"Cache health check failed: {exc}")
            return False

    async def stats(self) -> CacheStats:
        info = await self._call("info", lambda: self._client.info("stats"))
        total_keys = await self._call("dbsize", self._client.dbsize)
        hits = int(info.get("keyspace_hits", 0))
        misses = int(info.get("keyspace_misses", 0))
        return CacheStats(hit_ratio=_ratio(hits, misses), total_keys=int(total_keys))

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, operation: str, command: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(command(), timeout=self._timeout)
        except TimeoutError as exc:
            raise CacheError(f"Cache operation '{operation}' timed out after {self._timeout}s") from exc
        except (RedisError, OSError) as exc:
            raise CacheError(f"Cache operation '{operation}' failed: {exc}") from exc


class InMemoryCache(Cache):
    """Process-local ``Cache`` with lazy TTL expiry.

    Not shared between processes and lost on restart, which the cache
    contract allows. Expired entries are dropped on read, on every write and
    when stats are taken.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[str, float]] = {}
        self._clock = clock
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is not None and entry[1] <= self._clock():
            del self._entries[key]
            entry = None
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry[0]

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        self._prune(now)
        self._entries[key] = (value, now + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def health_check(self) -> bool:
        return True

    async def stats(self) -> CacheStats:
        self._prune(self._clock())
        return CacheStats(hit_ratio=_ratio(self._hits, self._misses), total_keys=len(self._entries))

    async def close(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry[1] > self._clock()

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]


def build_cache(settings: Settings) -> Cache:
    if settings.CACHE_BACKEND == "memory":
        logger.warning("Using in-memory cache; entries are not shared across processes")
        return InMemoryCache()
    return RedisCache.from_settings(settings)
