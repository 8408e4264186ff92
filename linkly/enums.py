"""Shared enums for the Linkly URL shortener.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "ServiceStatus", "RequestStatus", "CacheStatus"]


class HealthStatus(StrEnum):
    """Overall health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"


class ServiceStatus(StrEnum):
    """Per-dependency status reported by the health check."""

    UP = "up"
    DOWN = "down"

    @classmethod
    def from_bool(cls, healthy: bool) -> "ServiceStatus":
        return cls.UP if healthy else cls.DOWN


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    DUPLICATE = "duplicate"
    VALIDATION_ERROR = "validation_error"
    ERROR = "error"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class CacheStatus(StrEnum):
    """Cache status values for metrics."""

    HIT = "true"
    MISS = "false"
