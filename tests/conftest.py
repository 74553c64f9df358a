"""
pytest configuration and shared fixtures for the SafePulse tests.

Key concern: tests must not require a live MongoDB or leave a refresh
loop running. We achieve this by:
  1. Setting ENVIRONMENT=test before the app is imported, which disables
     the background refresh loop.
  2. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  3. Setting db_client.client = None (disconnected) so the health check
     reports "disconnected" — a valid test-mode state.

Services under test are built around the in-memory FakeDB in tests/fakes.py
and injected with app.dependency_overrides.
"""

import os
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")


@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test.

    - connect_to_mongo → no-op AsyncMock (startup doesn't attempt real connection)
    - close_mongo_connection → no-op AsyncMock
    - db_client.client / db_client.db → None
    """
    with (
        patch("safepulse.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("safepulse.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import safepulse.core.database as db_module

        # Save originals so we can restore after the test
        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_rate_limits():
    from safepulse.core.rate_limit import limiter

    limiter.reset()
    yield


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 — mock_db must run first
    """
    HTTPX async test client wired to the FastAPI app.

    Usage:
        async def test_something(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from safepulse.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
