"""
Spike Server — Test Configuration (conftest.py)
================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.
Who:   Used by all test files in the tests/ directory.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── test_settings: Settings with test values (short timeout, sqlite URL)
    ├── fast_bcrypt: Lowers bcrypt cost so hashing tests stay quick
    ├── database: In-memory SQLite Database with the schema created
    ├── db_session: Session on that database (committed at test end)
    ├── mock_db_session: Mock AsyncSession (no real DB needed)
    ├── mock_user_repository: AsyncMock standing in for UserRepository
    ├── app: Full application wired to the in-memory database
    ├── test_client: HTTPX AsyncClient for API endpoint testing
    ├── make_pipeline_app: Builds a bare app + pipeline around ad-hoc routes
    └── sample_user_data: Field values matching the User model
"""

import os
from datetime import datetime, timezone
from typing import Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Override settings for testing BEFORE any app imports
# (spike.main builds a module-level app from the environment)
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["APP_ENV"] = "test"
os.environ["LOG_LEVEL"] = "warn"
os.environ["DB_AUTO_MIGRATE"] = "false"

from spike.config import Settings  # noqa: E402
from spike.database import Database  # noqa: E402
from spike.middleware.cors import CORSConfig  # noqa: E402
from spike.middleware.pipeline import build_pipeline  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="test",
        request_timeout_ms=2000,
        database_url="sqlite+aiosqlite://",
        db_auto_migrate=False,
        log_level="warn",
    )


@pytest.fixture
def fast_bcrypt(monkeypatch):
    """Minimum bcrypt cost; hashes are still real and verifiable."""
    monkeypatch.setattr("spike.security.BCRYPT_ROUNDS", 4)


@pytest_asyncio.fixture
async def database():
    """
    Provides an in-memory SQLite database with every table created.

    StaticPool keeps one connection, so all sessions share the same data.
    """
    db = Database("sqlite+aiosqlite://")
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with database.session() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = user
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def mock_user_repository():
    repo = MagicMock()
    repo.create = AsyncMock(side_effect=lambda user: user)
    repo.get_by_id = AsyncMock(return_value=None)
    repo.get_by_username = AsyncMock(return_value=None)
    repo.get_by_email = AsyncMock(return_value=None)
    repo.update = AsyncMock(side_effect=lambda user: user)
    repo.delete = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def sample_user_data():
    """Field values matching the User model (password_hash filled by tests)."""
    now = datetime(2024, 10, 1, 12, 0, 0, tzinfo=timezone.utc)
    return {
        "id": 1,
        "username": "alice",
        "email": "alice@example.com",
        "role": "user",
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def app(test_settings, database, fast_bcrypt):
    from spike.main import create_app

    return create_app(test_settings, database)


@pytest_asyncio.fixture
async def test_client(app):
    """
    Provides an async HTTP test client for endpoint testing.

    How: Uses ASGITransport to route requests directly to the app
         (no lifespan, so no migrations or logging reconfiguration).

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/healthz")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


DEFAULT_CORS = CORSConfig(
    allowed_origins=("*",),
    allowed_methods=("GET", "POST", "PUT", "DELETE", "OPTIONS"),
    allowed_headers=("Authorization", "Content-Type"),
)


@pytest.fixture
def make_pipeline_app() -> Callable[..., FastAPI]:
    """
    Factory for a bare FastAPI app behind the full pipeline.

    Usage:
        app = make_pipeline_app(timeout=0.05)

        @app.get("/slow")
        async def slow(): ...
    """

    def factory(timeout: float = 1.0, cors: Optional[CORSConfig] = None) -> FastAPI:
        app = FastAPI()
        build_pipeline(app, timeout=timeout, cors=cors or DEFAULT_CORS)
        return app

    return factory
