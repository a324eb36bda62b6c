"""Pytest configuration and fixtures."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from config import Settings
from main import create_app

API_KEY = "test-api-key"
BASE_URL = "http://short.test"


@pytest.fixture
def settings(tmp_path):
    # A single pooled connection keeps SQLite writers strictly serialized
    return Settings(
        api_key=API_KEY,
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        public_base_url=BASE_URL,
        db_pool_size=1,
        db_max_overflow=0,
        db_pool_timeout=30,
        log_level="DEBUG",
    )


@pytest.fixture
def app(settings):
    app = create_app(settings)
    yield app
    app.state.engine.dispose()


@pytest.fixture
def session_factory(app):
    return app.state.session_factory


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def created(client):
    """A freshly shortened https://example.com/page."""
    response = await client.post("/shorten", json={"url": "https://example.com/page"})
    assert response.status_code == 201
    return response.json()
