"""Shared pytest fixtures for store, cache, pipeline and API tests.

The store runs on a throwaway SQLite file through aiosqlite and the cache is
the in-process ``InMemoryCache``; both satisfy the same interfaces as the
PostgreSQL and Redis bindings.
"""

import logging
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from linkly.background import BackgroundTasks
from linkly.cache import CacheStats, InMemoryCache
from linkly.config import Settings
from linkly.database import build_session_factory, close_db, init_db
from linkly.dependencies import ServiceManager, _service_manager
from linkly.exceptions import CacheError
from linkly.main import app
from linkly.maintenance import MaintenanceService
from linkly.redirect_service import RedirectService
from linkly.store import SQLAlchemyUrlStore
from linkly.url_service import UrlService


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        BASE_URL="http://test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'linkly.db'}",
        CACHE_BACKEND="memory",
        CACHE_TTL_SECONDS=3600,
        STORE_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("linkly.tests")


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_async_engine(settings.DATABASE_URL, echo=False)
    await init_db(test_engine)
    yield test_engine
    await close_db(test_engine)


@pytest.fixture
def store(engine: AsyncEngine, settings: Settings) -> SQLAlchemyUrlStore:
    return SQLAlchemyUrlStore(build_session_factory(engine), timeout=settings.STORE_TIMEOUT_SECONDS)


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest_asyncio.fixture
async def tasks(logger: logging.Logger) -> AsyncGenerator[BackgroundTasks, None]:
    runner = BackgroundTasks(logger)
    yield runner
    await runner.drain()


@pytest.fixture
def url_service(store, cache, tasks, settings, logger) -> UrlService:
    return UrlService(store, cache, tasks, settings, logger)


@pytest.fixture
def redirect_service(store, cache, tasks, settings, logger) -> RedirectService:
    return RedirectService(store, cache, tasks, settings, logger)


@pytest.fixture
def maintenance(store, cache, settings, logger) -> MaintenanceService:
    return MaintenanceService(store, cache, settings, logger)


@pytest_asyncio.fixture
async def manager(
    settings: Settings,
    store: SQLAlchemyUrlStore,
    cache: InMemoryCache,
) -> AsyncGenerator[ServiceManager, None]:
    await _service_manager.cleanup()
    await _service_manager.initialize(settings=settings, store=store, cache=cache)
    yield _service_manager
    await _service_manager.cleanup()


@pytest_asyncio.fixture
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class BrokenCache(InMemoryCache):
    """Cache whose every operation fails, as an unreachable Redis would."""

    async def get(self, key: str) -> str | None:
        raise CacheError("cache unavailable")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise CacheError("cache unavailable")

    async def delete(self, key: str) -> None:
        raise CacheError("cache unavailable")

    async def health_check(self) -> bool:
        return False

    async def stats(self) -> CacheStats:
        raise CacheError("cache unavailable")


@pytest.fixture
def broken_cache() -> BrokenCache:
    return BrokenCache()
