"""SQLAlchemy store adapter tests against SQLite."""

import asyncio
import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from linkly.codec import encode
from linkly.exceptions import StorageError
from linkly.models import utcnow
from linkly.store import ExpiredPurge, SQLAlchemyUrlStore


async def _create(store: SQLAlchemyUrlStore, url: str, expires_at: datetime.datetime | None = None) -> str:
    record_id = await store.insert(url, expires_at)
    short_code = encode(record_id)
    await store.update_code(record_id, short_code)
    return short_code


@pytest.mark.asyncio
async def test_insert_assigns_increasing_ids(store: SQLAlchemyUrlStore) -> None:
    first = await store.insert("https://example.com/a")
    second = await store.insert("https://example.com/b")
    assert first >= 1
    assert second > first


@pytest.mark.asyncio
async def test_record_without_code_is_invisible(store: SQLAlchemyUrlStore) -> None:
    await store.insert("https://example.com/pending")
    assert await store.find_active_by_url("https://example.com/pending") is None
    assert await store.list_active_by_popularity(10) == []


@pytest.mark.asyncio
async def test_find_by_code(store: SQLAlchemyUrlStore) -> None:
    short_code = await _create(store, "https://example.com/a")

    record = await store.find_by_code(short_code)

    assert record is not None
    assert record.original_url == "https://example.com/a"
    assert record.click_count == 0
    assert record.expires_at is None
    assert await store.find_by_code("zzz") is None


@pytest.mark.asyncio
async def test_update_code_for_missing_record(store: SQLAlchemyUrlStore) -> None:
    with pytest.raises(StorageError):
        await store.update_code(9999, encode(9999))


@pytest.mark.asyncio
async def test_find_active_by_url_ignores_expiring_records(store: SQLAlchemyUrlStore) -> None:
    expires_at = utcnow() + datetime.timedelta(days=1)
    await _create(store, "https://example.com/a", expires_at)
    assert await store.find_active_by_url("https://example.com/a") is None

    short_code = await _create(store, "https://example.com/a")
    record = await store.find_active_by_url("https://example.com/a")
    assert record is not None
    assert record.short_code == short_code


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(store: SQLAlchemyUrlStore) -> None:
    short_code = await _create(store, "https://example.com/a")

    for _ in range(5):
        await asyncio.gather(*(store.increment_clicks(short_code) for _ in range(4)))

    record = await store.find_by_code(short_code)
    assert record is not None
    assert record.click_count == 20


@pytest.mark.asyncio
async def test_increment_unknown_code_is_noop(store: SQLAlchemyUrlStore) -> None:
    await store.increment_clicks("nope")


@pytest.mark.asyncio
async def test_delete_by_code_is_idempotent(store: SQLAlchemyUrlStore) -> None:
    short_code = await _create(store, "https://example.com/a")

    await store.delete_by_code(short_code)
    await store.delete_by_code(short_code)

    assert await store.find_by_code(short_code) is None


@pytest.mark.asyncio
async def test_delete_expired(store: SQLAlchemyUrlStore) -> None:
    past = utcnow() - datetime.timedelta(hours=1)
    future = utcnow() + datetime.timedelta(hours=1)
    expired_code = await _create(store, "https://example.com/old", past)
    live_code = await _create(store, "https://example.com/new", future)
    forever_code = await _create(store, "https://example.com/forever")

    assert await store.delete_expired() == ExpiredPurge(deleted_count=1, short_codes=[expired_code])
    assert await store.delete_expired() == ExpiredPurge()
    assert await store.find_by_code(expired_code) is None
    assert await store.find_by_code(live_code) is not None
    assert await store.find_by_code(forever_code) is not None


@pytest.mark.asyncio
async def test_delete_expired_counts_half_written_rows(store: SQLAlchemyUrlStore) -> None:
    past = utcnow() - datetime.timedelta(hours=1)
    expired_code = await _create(store, "https://example.com/old", past)
    await store.insert("https://example.com/abandoned", past)

    purge = await store.delete_expired()

    assert purge.deleted_count == 2
    assert purge.short_codes == [expired_code]
    assert await store.delete_expired() == ExpiredPurge()

@pytest.mark.asyncio
async def test_list_active_by_popularity(store: SQLAlchemyUrlStore) -> None:
    quiet = await _create(store, "https://example.com/quiet")
    busy = await _create(store, "https://example.com/busy")
    expired = await _create(store, "https://example.com/expired", utcnow() - datetime.timedelta(minutes=1))
    for _ in range(3):
        await store.increment_clicks(busy)
    for _ in range(5):
        await store.increment_clicks(expired)

    records = await store.list_active_by_popularity(10)
    assert [record.short_code for record in records] == [busy, quiet]

    records = await store.list_active_by_popularity(1)
    assert [record.short_code for record in records] == [busy]


@pytest.mark.asyncio
async def test_health_check(store: SQLAlchemyUrlStore) -> None:
    assert await store.health_check() is True


@pytest.mark.asyncio
async def test_backend_errors_become_storage_errors() -> None:
    session = AsyncMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("database is locked"))
    session_factory = MagicMock()
    session_factory.return_value.__aenter__.return_value = session
    session_factory.return_value.__aexit__.return_value = False
    store = SQLAlchemyUrlStore(session_factory, timeout=1.0)

    with pytest.raises(StorageError, match="find_by_code"):
        await store.find_by_code("abc")
    assert await store.health_check() is False


@pytest.mark.asyncio
async def test_slow_backend_times_out() -> None:
    async def slow_execute(*args, **kwargs):
        await asyncio.sleep(1)

    session = AsyncMock()
    session.execute.side_effect = slow_execute
    session_factory = MagicMock()
    session_factory.return_value.__aenter__.return_value = session
    session_factory.return_value.__aexit__.return_value = False
    store = SQLAlchemyUrlStore(session_factory, timeout=0.01)

    with pytest.raises(StorageError, match="timed out"):
        await store.find_by_code("abc")
