"""Persistent store adapter for URL records.

The store is the source of truth for id→URL mappings. It owns id assignment
(database sequence), short code uniqueness (unique index) and click counting
(single atomic ``UPDATE``). Everything above it treats it as a black box
behind the ``UrlStore`` interface.

Store Interface
===============
::
    insert(url, expires_at)        → id        (atomic, unique, monotonic)
    update_code(id, code)                       (second phase of a write)
    find_by_code(code)             → URL | None
    find_active_by_url(url)        → URL | None (non-expiring records only)
    increment_clicks(code)                      (atomic, no read-modify-write)
    delete_by_code(code)                        (idempotent)
    delete_expired()               → ExpiredPurge (idempotent)
    list_active_by_popularity(n)   → [URL]
    health_check()                 → bool

Error Handling
==============
::
    SQLAlchemyError / OSError ──► StorageError
    asyncio timeout           ──► StorageError

    ExpiredPurge:  Outcome of a bulk expiry delete.
Classes:
    UrlStore:  Abstract interface consumed by the pipelines.
    SQLAlchemyUrlStore:  Async SQLAlchemy implementation (PostgreSQL, SQLite).
"""

import asyncio
import datetime
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from sqlalchemy import delete, or_, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from linkly.exceptions import StorageError
from linkly.models import URL, url_digest, utcnow

__all__ = ["ExpiredPurge", "UrlStore", "SQLAlchemyUrlStore"]

logger = logging.getLogger("linkly.store")

T = TypeVar("T")


@dataclass(frozen=True)
class ExpiredPurge:
    """Rows removed by ``delete_expired``.

    ``deleted_count`` includes half-written rows that never received a code;
    ``short_codes`` lists only the codes that may still be cached.
    """

    deleted_count: int = 0
    short_codes: list[str] = field(default_factory=list)


class UrlStore(ABC):
    """Interface for the persistent URL store.

    Every method raises ``StorageError`` when the backend fails or times out.
    Implementations must assign ids atomically and never reuse them; the
    short code scheme depends on it.
    """

    @abstractmethod
    async def insert(self, original_url: str, expires_at: datetime.datetime | None = None) -> int:
        """Insert a record without a short code and return its new id."""

    @abstractmethod
    async def update_code(self, record_id: int, short_code: str) -> None:
        """Attach the derived short code to a freshly inserted record."""

    @abstractmethod
    async def find_by_code(self, short_code: str) -> URL | None:
        """Return the record for ``short_code`` (expired or not), or None."""

    @abstractmethod
    async def find_active_by_url(self, original_url: str) -> URL | None:
        """Return an existing non-expiring record for ``original_url``, or None."""

    @abstractmethod
    async def increment_clicks(self, short_code: str) -> None:
        """Atomically add one to the record's click counter."""

    @abstractmethod
    async def delete_by_code(self, short_code: str) -> None:
        """Delete the record for ``short_code``. Deleting a missing record is a no-op."""

    @abstractmethod
    async def delete_expired(self) -> ExpiredPurge:
        """Delete every record whose expiry has passed."""

    @abstractmethod
    async def list_active_by_popularity(self, limit: int) -> list[URL]:
        """Return up to ``limit`` non-expired records, most clicked first."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the backend answers a trivial query."""


class SQLAlchemyUrlStore(UrlStore):
    """``UrlStore`` backed by an async SQLAlchemy engine.

    Each operation opens its own session from ``session_factory`` and is
    bounded by ``timeout`` seconds.

    Example:
        >>> store = SQLAlchemyUrlStore(build_session_factory(engine), timeout=2.0)
        >>> record_id = await store.insert("https://example.com")
        >>> await store.update_code(record_id, encode(record_id))
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], timeout: float = 2.0) -> None:
        self._session_factory = session_factory
        self._timeout = timeout

    async def insert(self, original_url: str, expires_at: datetime.datetime | None = None) -> int:
        async def work(session: AsyncSession) -> int:
            url = URL(
                original_url=original_url,
                url_digest=url_digest(original_url),
                expires_at=expires_at,
                click_count=0,
            )
            session.add(url)
            await session.flush()
            record_id = url.id
            await session.commit()
            return record_id

        return await self._execute("insert", work)

    async def update_code(self, record_id: int, short_code: str) -> None:
        async def work(session: AsyncSession) -> None:
            result = await session.execute(update(URL).where(URL.id == record_id).values(short_code=short_code))
            if result.rowcount != 1:
                await session.rollback()
                raise StorageError(f"Record {record_id} vanished before its short code was assigned")
            await session.commit()

        await self._execute("update_code", work)

    async def find_by_code(self, short_code: str) -> URL | None:
        async def work(session: AsyncSession) -> URL | None:
            result = await session.execute(select(URL).where(URL.short_code == short_code))
            return result.scalar_one_or_none()

        return await self._execute("find_by_code", work)

    async def find_active_by_url(self, original_url: str) -> URL | None:
        async def work(session: AsyncSession) -> URL | None:
            result = await session.execute(
                select(URL)
                .where(
                    URL.url_digest == url_digest(original_url),
                    URL.original_url == original_url,
                    URL.expires_at.is_(None),
                    URL.short_code.is_not(None),
                )
                .order_by(URL.id)
                .limit(1)
            )
            return result.scalar_one_or_none()

        return await self._execute("find_active_by_url", work)

    async def increment_clicks(self, short_code: str) -> None:
        async def work(session: AsyncSession) -> None:
            await session.execute(
                update(URL).where(URL.short_code == short_code).values(click_count=URL.click_count + 1)
            )
            await session.commit()

        await self._execute("increment_clicks", work)

    async def delete_by_code(self, short_code: str) -> None:
        async def work(session: AsyncSession) -> None:
            await session.execute(delete(URL).where(URL.short_code == short_code))
            await session.commit()

        await self._execute("delete_by_code", work)

    async def delete_expired(self) -> ExpiredPurge:
        async def work(session: AsyncSession) -> ExpiredPurge:
            now = utcnow()
            result = await session.execute(
                select(URL.id, URL.short_code).where(URL.expires_at.is_not(None), URL.expires_at <= now)
            )
            rows = result.all()
            if not rows:
                return ExpiredPurge()
            await session.execute(delete(URL).where(URL.id.in_([row.id for row in rows])))
            await session.commit()
            return ExpiredPurge(
                deleted_count=len(rows),
                short_codes=[row.short_code for row in rows if row.short_code],
            )

        return await self._execute("delete_expired", work)

    async def list_active_by_popularity(self, limit: int) -> list[URL]:
        async def work(session: AsyncSession) -> list[URL]:
            result = await session.execute(
                select(URL)
                .where(
                    URL.short_code.is_not(None),
                    or_(URL.expires_at.is_(None), URL.expires_at > utcnow()),
                )
                .order_by(URL.click_count.desc(), URL.id)
                .limit(limit)
            )
            return list(result.scalars().all())

        return await self._execute("list_active_by_popularity", work)

    async def health_check(self) -> bool:
        async def work(session: AsyncSession) -> None:
            await session.execute(text("SELECT 1"))

        try:
            await self._execute("health_check", work)
        except StorageError as exc:
            logger.error(f"Database health check failed: {exc}")
            return False
        return True

    async def _execute(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(self._run(work), timeout=self._timeout)
        except TimeoutError as exc:
            raise StorageError(f"Store operation '{operation}' timed out after {self._timeout}s") from exc
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Store operation '{operation}' failed: {exc}") from exc

    async def _run(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self._session_factory() as session:
            return await work(session)
