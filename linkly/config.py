"""Runtime settings for Linkly, read from the environment or a ``.env`` file.

Settings Groups
===============
::
    APP_*, BASE_URL, LOG_LEVEL     service identity and logging
    DATABASE_*, STORE_TIMEOUT_*    persistent store (SQLAlchemy)
    CACHE_*, REDIS_URL             cache adapter (redis or memory)
    MAX_*, REDIRECT_STATUS_CODE    short URL rules
    PRELOAD_DEFAULT_LIMIT          maintenance jobs

Usage::
    from linkly.config import get_settings

    ttl = get_settings().CACHE_TTL_SECONDS

``get_settings`` builds the object once per process. Tests construct
``Settings(...)`` directly and inject it instead.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["CacheBackend", "Settings", "get_settings"]

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

CacheBackend = Literal["redis", "memory"]


class Settings(BaseSettings):
    APP_NAME: str = "linkly"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://linkly:linkly@db:5432/linkly"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False
    STORE_TIMEOUT_SECONDS: float = Field(2.0, gt=0)

    # Cache
    CACHE_BACKEND: CacheBackend = "redis"
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_TTL_SECONDS: int = Field(86400, gt=0)  # 24 hours
    CACHE_KEY_PREFIX: str = "url"
    CACHE_TIMEOUT_SECONDS: float = Field(0.5, gt=0)

    # Short URL rules
    MAX_URL_LENGTH: int = 2048
    MAX_SHORT_CODE_LENGTH: int = 10
    # Permanent redirects skip click counting on repeat visits.
    REDIRECT_STATUS_CODE: int = 302

    # Maintenance
    PRELOAD_DEFAULT_LIMIT: int = Field(1000, gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
