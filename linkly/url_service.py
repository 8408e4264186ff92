"""Write pipeline: validate, deduplicate, persist, encode, warm.

Flow Diagram — create_short_url()
=================================
::
    ┌──────────────┐
    │ raw url,     │
    │ expires_at?  │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ validate url │──── bad ──► ValidationError
    │ parse expiry │
    └──────┬───────┘
           ▼
    ┌──────────────┐   found   ┌──────────────┐
    │ dedup lookup │──────────►│ is_new=False │
    │ (no expiry)  │           └──────────────┘
    └──────┬───────┘
           │ miss / store error (logged)
           ▼
    ┌──────────────┐
    │ insert       │──── fails ──► StorageError
    │  → id        │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ code=encode  │
    │ update_code  │──── fails ──► StorageError
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ warm cache   │──── CacheError logged, ignored
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ is_new=True  │
    └──────────────┘

Key Behaviours
===============
- Only requests without expiry are deduplicated; dedup is best-effort.
- The code is derived from the store-assigned id, so it cannot collide.
- Two concurrent first-time requests for the same URL may both insert;
  both results are valid short URLs for that target.
- Stats lookups treat expired records as missing and schedule their removal.

Classes:
    ShortenResult:  Outcome of a create request.
    UrlService:  Write pipeline and stats lookup.

Functions:
    validate_url():  Normalizes and validates a raw URL.
    parse_expiry():  Parses and validates an expiry timestamp.
"""

import datetime
import logging
import time
from dataclasses import dataclass
from urllib.parse import urlsplit

import validators
from prometheus_client import Counter, Histogram

from linkly.background import BackgroundTasks
from linkly.cache import Cache, entry_ttl
from linkly.codec import encode
from linkly.config import Settings
from linkly.enums import RequestStatus
from linkly.exceptions import CacheError, StorageError, ValidationError
from linkly.maintenance import evict_record
from linkly.models import URL, utcnow
from linkly.store import UrlStore

__all__ = ["ShortenResult", "UrlService", "validate_url", "parse_expiry"]

URL_CREATION_REQUESTS_TOTAL = Counter(
    "linkly_creation_requests_total",
    "Total URL creation requests",
    ["status"],
)
URL_CREATION_DURATION = Histogram(
    "linkly_creation_duration_seconds",
    "Time taken to create short URLs",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

_ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class ShortenResult:
    short_code: str
    short_url: str
    original_url: str
    is_new: bool


def validate_url(raw_url: object, max_length: int = 2048) -> str:
    """Return the trimmed URL or raise ``ValidationError``.

    Args:
        raw_url: Caller-supplied value, not yet known to be a string
        max_length: Maximum accepted length after trimming

    Returns:
        str: The URL with surrounding whitespace removed
    """
    if not isinstance(raw_url, str):
        raise ValidationError("URL is required and must be a string")
    url = raw_url.strip()
    if not url:
        raise ValidationError("URL is required")
    if len(url) > max_length:
        raise ValidationError(f"URL too long. Maximum length is {max_length} characters")
    if urlsplit(url).scheme.lower() not in _ALLOWED_SCHEMES:
        raise ValidationError("Invalid URL format. Must include http:// or https://")
    if not validators.url(url):
        raise ValidationError("Invalid URL format")
    return url


def parse_expiry(
    value: str | datetime.datetime | None,
    now: datetime.datetime | None = None,
) -> datetime.datetime | None:
    """Parse an ISO 8601 expiry and require it to be strictly in the future.

    Naive timestamps are read as UTC. Returns an aware UTC datetime, or None
    when no expiry was given.
    """
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        expires_at = value
    elif isinstance(value, str) and value.strip():
        try:
            expires_at = datetime.datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValidationError(
                "Invalid expires_at format. Use ISO 8601 format (e.g., 2030-12-31T23:59:59Z)"
            ) from exc
    else:
        raise ValidationError("Invalid expires_at format. Use ISO 8601 format (e.g., 2030-12-31T23:59:59Z)")

    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=datetime.UTC)
    expires_at = expires_at.astimezone(datetime.UTC)

    if expires_at <= (now or utcnow()):
        raise ValidationError("expires_at must be in the future")
    return expires_at


class UrlService:
    """Write pipeline for short URLs, plus the stats lookup.

    Example:
        >>> service = UrlService(store, cache, tasks, settings, logger)
        >>> result = await service.create_short_url("https://example.com/a")
        >>> result.short_code, result.is_new
        ('1', True)
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
    def from_context(cls, ctx: "RequestContext") -> "UrlService":
        return cls(ctx.store, ctx.cache, ctx.tasks, ctx.settings, ctx.logger)

    async def create_short_url(
        self,
        raw_url: object,
        expires_at: str | datetime.datetime | None = None,
    ) -> ShortenResult:
        """Create (or reuse) a short URL.

        Raises:
            ValidationError: If the URL or expiry is malformed
            StorageError: If the record cannot be persisted
        """
        start_time = time.perf_counter()
        try:
            original_url = validate_url(raw_url, self._settings.MAX_URL_LENGTH)
            expiry = parse_expiry(expires_at)

            if expiry is None:
                existing = await self._find_duplicate(original_url)
                if existing is not None:
                    URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.DUPLICATE).inc()
                    self._logger.info(f"Reusing short code {existing.short_code} for {original_url}")
                    return self._result(existing.short_code, original_url, is_new=False)

            record_id = await self._store.insert(original_url, expiry)
            short_code = encode(record_id)
            await self._store.update_code(record_id, short_code)

            await self._warm_cache(short_code, original_url, expiry)

            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
            self._logger.info(
                f"URL created: {short_code} -> {original_url} in {time.perf_counter() - start_time:.3f}s"
            )
            return self._result(short_code, original_url, is_new=True)

        except ValidationError as exc:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            self._logger.warning(f"URL creation rejected: {exc}")
            raise
        except StorageError as exc:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"URL creation failed: {exc}")
            raise
        finally:
            URL_CREATION_DURATION.observe(time.perf_counter() - start_time)

    async def get_stats(self, short_code: str) -> URL | None:
        """Return the record behind ``short_code``, or None if unknown or expired."""
        record = await self._store.find_by_code(short_code)
        if record is None:
            return None
        if record.is_expired():
            self._logger.info(f"Stats requested for expired code {short_code}; scheduling removal")
            self._tasks.spawn(
                f"delete_expired:{short_code}",
                evict_record(self._store, self._cache, short_code, self._logger),
            )
            return None
        return record

    async def _find_duplicate(self, original_url: str) -> URL | None:
        try:
            return await self._store.find_active_by_url(original_url)
        except StorageError as exc:
            self._logger.warning(f"Deduplication check failed, creating a new code: {exc}")
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
            self._logger.warning(f"Failed to warm cache for {short_code}: {exc}")

    def _result(self, short_code: str, original_url: str, is_new: bool) -> ShortenResult:
        return ShortenResult(
            short_code=short_code,
            short_url=f"{self._settings.BASE_URL.rstrip('/')}/{short_code}",
            original_url=original_url,
            is_new=is_new,
        )
