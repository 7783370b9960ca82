"""Integration test fixtures for SpeechCraft.

Provides a fully wired FastAPI application with the fake provider and an
async HTTP client that uses an in-memory SQLite database with real
repository operations. Background polling is driven explicitly through
``app.state.queue.run_pending()``.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from src.api.app import create_app


@pytest.fixture
def app(settings, fake_provider):
    """Create a fresh FastAPI application instance."""
    return create_app(settings=settings, provider=fake_provider)


@pytest.fixture
async def async_client(app, db):
    """AsyncClient backed by the in-memory test engine.

    The ``db`` fixture injects the test engine into the database module so
    that all routes use the same in-memory SQLite with tables already created.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
