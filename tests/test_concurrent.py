"""Many simultaneous requests against one short code.

Endpoints are sync and run on the threadpool, so these calls really do
overlap; the access counter must not lose increments.
"""

import asyncio
import dataclasses

import models
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from main import create_app


@pytest.fixture
def pooled_app(settings):
    # Production-sized pool so redirects write through separate connections
    app = create_app(dataclasses.replace(settings, db_pool_size=20))
    yield app
    app.state.engine.dispose()


@pytest_asyncio.fixture
async def pooled_client(pooled_app):
    async with AsyncClient(transport=ASGITransport(app=pooled_app), base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
class TestConcurrentRedirects:

    async def test_parallel_redirects_count_every_access(self, pooled_client, pooled_app):
        created = (await pooled_client.post("/shorten", json={"url": "https://example.com/page"})).json()
        code = created["shortCode"]
        concurrency = 50

        responses = await asyncio.gather(
            *(pooled_client.get(f"/{code}") for _ in range(concurrency)), return_exceptions=True
        )

        for i, r in enumerate(responses):
            if isinstance(r, Exception):
                pytest.fail(f"Request {i} raised: {r!r}")
            assert r.status_code == 301, f"Request {i}: status {r.status_code}"

        stats = (await pooled_client.get(f"/shorten/{code}/stats")).json()
        assert stats["accessCount"] == concurrency
        assert len(stats["accessLogs"]) == concurrency

        with pooled_app.state.session_factory() as db:
            assert db.query(models.AccessLog).filter_by(url_id=created["id"]).count() == concurrency

    async def test_parallel_creates_get_unique_codes(self, client):
        concurrency = 20
        urls = [f"https://example.com/page_{i}" for i in range(concurrency)]

        responses = await asyncio.gather(*(client.post("/shorten", json={"url": url}) for url in urls))

        assert all(r.status_code == 201 for r in responses)
        codes = [r.json()["shortCode"] for r in responses]
        assert len(set(codes)) == concurrency
