"""Redirect endpoint behavior tests."""

import datetime

import pytest
from httpx import AsyncClient

from linkly.codec import encode
from linkly.dependencies import ServiceManager
from linkly.models import utcnow


@pytest.mark.asyncio
async def test_redirect_existing_url(client: AsyncClient, manager: ServiceManager) -> None:
    created = await client.post("/shorten", json={"url": "https://www.example.com"})
    code = created.json()["shortCode"]

    response = await client.get(f"/{code}", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "https://www.example.com"

    await manager.tasks.drain()
    stats = await client.get(f"/stats/{code}")
    assert stats.json()["click_count"] == 1


@pytest.mark.asyncio
async def test_redirect_after_cache_loss(client: AsyncClient, manager: ServiceManager) -> None:
    created = await client.post("/shorten", json={"url": "https://www.example.com"})
    code = created.json()["shortCode"]
    await manager.cache.delete(code)

    response = await client.get(f"/{code}", follow_redirects=False)
    assert response.status_code == 302

    await manager.tasks.drain()
    assert await manager.cache.get(code) == "https://www.example.com"


@pytest.mark.asyncio
async def test_redirect_nonexistent(client: AsyncClient) -> None:
    response = await client.get("/nonexist", follow_redirects=False)
    assert response.status_code == 404
    assert response.json()["detail"] == "URL not found or expired"


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["bad-code", "abcdefghijk", "a_b"])
async def test_redirect_invalid_code(client: AsyncClient, code: str) -> None:
    response = await client.get(f"/{code}", follow_redirects=False)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_redirect_expired(client: AsyncClient, manager: ServiceManager) -> None:
    record_id = await manager.store.insert("https://old.example.com", utcnow() - datetime.timedelta(seconds=5))
    code = encode(record_id)
    await manager.store.update_code(record_id, code)

    response = await client.get(f"/{code}", follow_redirects=False)
    assert response.status_code == 404

    await manager.tasks.drain()
    stats = await client.get(f"/stats/{code}")
    assert stats.status_code == 404
