"""Shared pytest fixtures for the SpeechCraft test suite.

Provides the fake transcription provider, test settings, auth header
builders, and database setup helpers used across unit and integration tests.
"""

import pytest

from src.core.config import Settings
from tests.fakes import TEST_SECRET, FakeProvider, make_token

# ---------------------------------------------------------------------------
# Provider Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_provider():
    return FakeProvider()


# ---------------------------------------------------------------------------
# Settings / auth Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path):
    """Settings for an isolated app: in-memory DB, zero poll interval, local audio."""
    return Settings(
        environment="development",
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret=TEST_SECRET,
        identity_provider="jwt",
        audio_store="local",
        audio_dir=str(tmp_path / "audio"),
        public_base_url="http://test",
        poll_interval_seconds=0,
        poll_max_attempts=5,
        poll_workers=1,
        rate_limit_max_requests=1000,
    )


@pytest.fixture
def auth_headers():
    """Return a builder for ``Authorization`` headers of a given user."""

    def _build(user_id: str = "u1", role: str | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _build


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine with tables, dispose after test."""
    from sqlalchemy.ext.asyncio import create_async_engine
    from sqlalchemy.pool import StaticPool

    from src.services.storage import models_db  # noqa: F401
    from src.services.storage.database import Base

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Yield an AsyncSession bound to the test engine; rolls back after test."""
    from sqlalchemy.ext.asyncio import async_sessionmaker

    factory = async_sessionmaker(db_engine, expire_on_commit=False)
    async with factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def repository(db_session):
    """Return a TranscriptionRepository bound to the test session."""
    from src.services.storage.repository import TranscriptionRepository

    return TranscriptionRepository(db_session)


@pytest.fixture
def db(db_engine):
    """Point ``get_session()`` at the in-memory test engine."""
    from src.services.storage import database

    database._engine = db_engine
    database._session_factory = None
    yield db_engine
    database.reset_engine()
