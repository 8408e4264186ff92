"""SQLAlchemy ORM models for the Linkly URL shortener.

This module defines the database schema for URL mappings, with the indexes
the redirect, deduplication and cleanup paths rely on.

Data Model Layout
=================
::
    urls table
    ├─ id (BIGSERIAL PRIMARY KEY)
    ├─ short_code (VARCHAR(10) UNIQUE, NULL until filled)
    ├─ original_url (TEXT NOT NULL)
    ├─ url_digest (CHAR(32), INDEXED)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    ├─ expires_at (TIMESTAMPTZ NULL, INDEXED)
    └─ click_count (BIGINT DEFAULT 0, INDEXED)

Record Lifecycle
================
::
    insert(url, expires_at) ──► id assigned, short_code NULL
              │
              ▼
    update_code(id, encode(id)) ──► record becomes visible
              │
              ▼
    increment_clicks(code)  (read path, atomic)
              │
              ▼
    delete_by_code / delete_expired  (lazy or scheduled eviction)

Key Behaviours
===============
- short_code is a pure function of id and is never rewritten once set.
- Rows whose short_code is still NULL are invisible to every lookup.
- url_digest is the md5 of original_url and backs the dedup lookup.
- Timestamps are timezone-aware UTC; ``as_utc`` normalizes drivers that
  return naive values.

Classes:
    URL:  A shortened URL mapping with expiry and click tracking.
"""

import datetime
import hashlib

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from linkly.database import Base

__all__ = ["URL", "url_digest", "as_utc", "utcnow"]

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_ID_TYPE = BigInteger().with_variant(Integer(), "sqlite")


def url_digest(original_url: str) -> str:
    return hashlib.md5(original_url.encode("utf-8")).hexdigest()


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=datetime.UTC)


class URL(Base):
    __tablename__ = "urls"

    id: Mapped[int] = mapped_column(_ID_TYPE, primary_key=True, autoincrement=True)
    short_code: Mapped[str | None] = mapped_column(String(10), unique=True, index=True, nullable=True)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    url_digest: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), index=True, nullable=True
    )
    click_count: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0", index=True, nullable=False)

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        expires_at = as_utc(self.expires_at)
        if expires_at is None:
            return False
        return expires_at <= (now or utcnow())

    def __repr__(self) -> str:
        return f"<URL(id={self.id}, short_code='{self.short_code}', click_count={self.click_count})>"
