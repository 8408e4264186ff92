"""Pydantic schemas for request/response validation in the Linkly API.

This module defines the HTTP payloads. Business validation of URLs and
expiry timestamps lives in ``linkly.url_service`` so that the pipelines
enforce it regardless of the caller; these schemas only shape JSON.

Schema Hierarchy
=================
::
    URLCreate (Input)
    ├─ url: str
    └─ expires_at: str | None (ISO 8601)

    ShortenResponse (Output, camelCase)
    ├─ shortUrl, shortCode, originalUrl
    └─ isNew

    URLStats (Output)
    ├─ short_code, original_url, click_count
    └─ created_at, expires_at

    HealthResponse (Output)
    ├─ status, timestamp
    ├─ services: {database, cache}
    └─ cache: {hitRatio, totalKeys} | None

    PreloadRequest / PreloadResponse / CleanupResponse

Key Behaviours
===============
- Camel-cased outputs use an alias generator; FastAPI serializes by alias.
- All datetime fields are timezone-aware.
"""

import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from linkly.enums import HealthStatus, ServiceStatus

__all__ = [
    "URLCreate",
    "ShortenResponse",
    "URLStats",
    "ServicesHealth",
    "CacheStatsResponse",
    "HealthResponse",
    "CleanupResponse",
    "PreloadRequest",
    "PreloadResponse",
]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class URLCreate(BaseModel):
    url: str
    expires_at: str | None = Field(
        None,
        description="ISO 8601 expiry, e.g. '2030-12-31T23:59:59Z'",
    )


class ShortenResponse(_CamelModel):
    short_url: str
    short_code: str
    original_url: str
    is_new: bool


class URLStats(BaseModel):
    short_code: str
    original_url: str
    click_count: int
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None

    model_config = {"from_attributes": True}


class ServicesHealth(BaseModel):
    database: ServiceStatus
    cache: ServiceStatus


class CacheStatsResponse(_CamelModel):
    hit_ratio: float
    total_keys: int


class HealthResponse(BaseModel):
    status: HealthStatus
    timestamp: datetime.datetime
    services: ServicesHealth
    cache: CacheStatsResponse | None = None


class CleanupResponse(_CamelModel):
    message: str = "Cleanup completed"
    deleted_count: int


class PreloadRequest(BaseModel):
    limit: int | None = Field(None, gt=0)


class PreloadResponse(_CamelModel):
    message: str = "Cache preloaded"
    loaded_count: int
