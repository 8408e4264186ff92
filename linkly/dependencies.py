"""Dependency injection with a singleton service manager.

This module wires the store, cache, background runner and logger once per
process and hands them to request handlers through a lightweight request
context, keeping per-request overhead to a few attribute lookups.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from linkly.background import BackgroundTasks
from linkly.cache import Cache, build_cache
from linkly.config import Settings, get_settings
from linkly.database import build_engine, build_session_factory, close_db, init_db
from linkly.maintenance import MaintenanceService
from linkly.redirect_service import RedirectService
from linkly.store import SQLAlchemyUrlStore, UrlStore
from linkly.url_service import UrlService

__all__ = [
    "ServiceManager",
    "RequestContext",
    "RequestLoggerAdapter",
    "get_service_manager",
    "get_request_context",
    "get_url_service",
    "get_redirect_service",
    "get_maintenance_service",
]


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton service manager for shared resources.

    Owns the database engine (unless a store is injected), the cache client
    and the background task runner for the lifetime of the process.
    """

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(
        self,
        settings: Settings | None = None,
        store: UrlStore | None = None,
        cache: Cache | None = None,
    ) -> None:
        """Initialize shared resources once at startup.

        ``store`` and ``cache`` may be injected (tests, alternative backends);
        otherwise they are built from settings.
        """
        if self._initialized:
            return
        self.settings = settings or get_settings()
        self.logger = self._setup_logger()
        self.engine: AsyncEngine | None = None
        if store is None:
            self.engine = build_engine(self.settings)
            await init_db(self.engine)
            store = SQLAlchemyUrlStore(
                build_session_factory(self.engine),
                timeout=self.settings.STORE_TIMEOUT_SECONDS,
            )
        self.store = store
        self.cache = cache if cache is not None else build_cache(self.settings)
        self.tasks = BackgroundTasks(self.logger.getChild("background"))
        self._initialized = True
        self.logger.info(f"{self.settings.APP_NAME} initialized ({self.settings.APP_ENV})")

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("linkly")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if not self._initialized:
            return
        await self.tasks.drain()
        await self.cache.close()
        if self.engine is not None:
            await close_db(self.engine)
        self._initialized = False


# Global singleton instance
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Prefixes messages with the request id and keeps per-call ``extra`` fields."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return f"[{self.extra['request_id']}] {msg}", kwargs


@dataclass
class RequestContext:
    """Per-request view over the shared resources.

    Attributes:
        service_manager: Singleton service manager with shared resources
        request_id: Unique identifier for this request
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=time.perf_counter)

    @property
    def store(self) -> UrlStore:
        return self.service_manager.store

    @property
    def cache(self) -> Cache:
        return self.service_manager.cache

    @property
    def tasks(self) -> BackgroundTasks:
        return self.service_manager.tasks

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> RequestLoggerAdapter:
        """Shared logger carrying the request context on every record."""
        return RequestLoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.perf_counter() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
    )


def get_url_service(ctx: RequestContext = Depends(get_request_context)) -> UrlService:
    return UrlService.from_context(ctx)


def get_redirect_service(ctx: RequestContext = Depends(get_request_context)) -> RedirectService:
    return RedirectService.from_context(ctx)


def get_maintenance_service(ctx: RequestContext = Depends(get_request_context)) -> MaintenanceService:
    return MaintenanceService.from_context(ctx)
