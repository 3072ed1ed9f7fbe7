"""
Spike Server — Database Session Management
===========================================

What:  Async SQLAlchemy engine, session factory, migrations, and FastAPI dependency.
How:   A `Database` object owns one engine and one session factory. It is built
       by main.py from Settings (or injected by tests) and stored on
       `app.state.database`; handlers get per-request sessions through
       `get_db_session`, which commits on success and rolls back on error.
Who:   Used by route handlers via FastAPI's dependency injection system, and by
       the application lifespan (migrations, shutdown).
When:  Engine is created with the app (no connection is opened until first use);
       sessions are created per-request.

Connection Pooling Strategy (server databases only):
    pool_size=25:      Persistent connections for normal load
    max_overflow=10:   Temporary connections for traffic spikes
    pool_pre_ping:     Validates connections before use (catches stale connections)
    pool_recycle=3600: Recycles connections every hour

SQLite (tests):
    In-memory databases use a single shared connection (StaticPool) so every
    session sees the same schema and rows.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from alembic import command
from alembic.config import Config
from fastapi import Request
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

ALEMBIC_DIR = Path(__file__).resolve().parent.parent / "alembic"


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models inherit from this class to register with the shared metadata
    (read by Alembic and by `Database.create_all`).
    """
    pass


class Database:
    """
    Owns the async engine and session factory for one database URL.

    Args:
        url:           Async SQLAlchemy URL (postgresql+asyncpg://..., sqlite+aiosqlite://...)
        pool_size:     Persistent pool connections (ignored for SQLite)
        max_overflow:  Burst connections above pool_size (ignored for SQLite)
        pool_pre_ping: Validate connections before checkout
        echo:          Log every SQL statement (debug only)
    """

    def __init__(
        self,
        url: str,
        pool_size: int = 25,
        max_overflow: int = 10,
        pool_pre_ping: bool = True,
        echo: bool = False,
    ):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(
            url, echo=echo, **self._engine_options(url, pool_size, max_overflow, pool_pre_ping)
        )
        # expire_on_commit=False: handlers read attributes after the commit
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            echo=settings.log_level == "debug",
        )

    @staticmethod
    def _engine_options(url: str, pool_size: int, max_overflow: int, pool_pre_ping: bool) -> dict:
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite":
            options: dict = {"connect_args": {"check_same_thread": False}}
            if parsed.database in (None, "", ":memory:"):
                options["poolclass"] = StaticPool
            return options
        return {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_pre_ping": pool_pre_ping,
            "pool_recycle": 3600,
        }

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Open one session; commit if the block finishes cleanly, roll back otherwise.

        Raises:
            Whatever the consumer raised, after the rollback.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def ping(self) -> None:
        """Round-trip `SELECT 1`; raises the driver error when unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_all(self) -> None:
        """Create every mapped table directly (tests and throwaway databases)."""
        # Registers the models on Base.metadata
        from spike.models import user  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def alembic_config(self) -> Config:
        cfg = Config()
        cfg.set_main_option("script_location", str(ALEMBIC_DIR))
        cfg.set_main_option("sqlalchemy.url", self.url.replace("%", "%%"))
        return cfg

    async def run_migrations(self, revision: str = "head") -> None:
        """
        Apply pending Alembic migrations up to `revision`.

        Alembic's env.py drives its own event loop, so the upgrade runs in a
        worker thread.
        """
        logger.info("Running database migrations", extra={"revision": revision})
        await asyncio.to_thread(command.upgrade, self.alembic_config(), revision)
        logger.info("Database migrations complete")

    async def dispose(self) -> None:
        """Close every pooled connection (application shutdown)."""
        await self.engine.dispose()


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Example usage in a route:
        @router.get("/users/profile")
        async def profile(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    database: Optional[Database] = getattr(request.app.state, "database", None)
    if database is None:
        raise RuntimeError("application has no database configured")
    async with database.session() as session:
        yield session
