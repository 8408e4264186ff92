"""Database engine and session factory for the Linkly persistent store.

This module provides SQLAlchemy async engine setup, session factories,
and schema lifecycle operations using PostgreSQL as the backend.

Flow Diagram — Store Operations
===============================
::
    ┌─────────────┐
    │ Store call  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ session     │
    │ factory()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Run query / │
    │ commit      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Auto-close  │
    │ (async with)│
    └─────────────┘

How to Use
===========
**Step 1 — Build the engine on startup**::
    engine = build_engine(settings)
    await init_db(engine)  # Creates tables

**Step 2 — Hand a session factory to the store**::
    store = SQLAlchemyUrlStore(build_session_factory(engine), timeout=2.0)

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- Every store operation opens its own short-lived session, so background
  effects never share a request's session.
- Connection pooling is configured for production workloads (PostgreSQL).
- SQLite URLs (``sqlite+aiosqlite``) skip pool sizing, for local runs.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    build_engine():  Creates the async engine from settings.
    build_session_factory():  Creates the async session factory.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from linkly.config import Settings

__all__ = ["Base", "build_engine", "build_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    if settings.DATABASE_URL.startswith("sqlite"):
        return create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Registers the mapped tables on Base.metadata.
    import linkly.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
