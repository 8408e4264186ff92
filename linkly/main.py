"""FastAPI application entry point for the Linkly URL shortener.

This module configures the FastAPI application with middleware, lifecycle
management, error mapping and route registration.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │  uvicorn     │
    │  startup     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ startup:     │
    │ ServiceMgr.  │
    │ initialize() │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP   │
    │ requests     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ shutdown:    │
    │ drain tasks, │
    │ close cache, │
    │ dispose db   │
    └──────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn linkly.main:app --host 0.0.0.0 --port 8080

**Step 2 — Make API calls**::
    curl -X POST http://localhost:8080/shorten \\
         -H "Content-Type: application/json" \\
         -d '{"url": "https://example.com"}'

    curl -i http://localhost:8080/1

Key Behaviours
===============
- Tables are created on startup when the store is database-backed.
- ``ValidationError`` → 400, ``NotFoundError`` → 404, ``StorageError`` → 500.
- Prometheus metrics are exposed at ``/metrics``.
- In-flight background effects are drained before shutdown completes.
"""

__all__ = ["app", "create_app"]

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from linkly.config import get_settings
from linkly.dependencies import _service_manager
from linkly.exceptions import NotFoundError, StorageError, ValidationError
from linkly.routes import router

logger = logging.getLogger("linkly")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await _service_manager.initialize()
    yield
    # Shutdown
    await _service_manager.cleanup()


async def _validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Collision-free URL shortener with cache-first redirects",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(StorageError, _storage_error_handler)

    # /metrics must be registered before the catch-all redirect route.
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    app.include_router(router)
    return app


app = create_app()
