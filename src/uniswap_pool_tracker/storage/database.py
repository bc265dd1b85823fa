"""Async engine and session handling for the tracker's datastore.

PostgreSQL (asyncpg) is the production target. SQLite (aiosqlite) is
accepted for tests and local runs; an in-memory SQLite database is kept
on a single shared connection so every session sees the same schema.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from uniswap_pool_tracker.storage.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

SYNC_POSTGRES_PREFIX = "postgresql://"
ASYNC_POSTGRES_PREFIX = "postgresql+asyncpg://"


def _normalize_async_database_url(database_url: str) -> str:
    """Rewrite a plain PostgreSQL URL to the asyncpg driver."""
    if not database_url.startswith(SYNC_POSTGRES_PREFIX):
        return database_url
    logger.warning("DATABASE_URL has no async driver, switching to %s", ASYNC_POSTGRES_PREFIX)
    return ASYNC_POSTGRES_PREFIX + database_url[len(SYNC_POSTGRES_PREFIX) :]


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.endswith("://"))


def create_async_db_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Build the async engine for `database_url`.

    Pool sizing only applies to server databases. For SQLite the sizing
    options are discarded, and an in-memory database is pinned to one
    connection with `StaticPool`.
    """
    url = _normalize_async_database_url(database_url)
    if url.startswith("sqlite"):
        kwargs.pop("pool_size", None)
        kwargs.pop("max_overflow", None)
        if _is_memory_sqlite(url):
            kwargs.setdefault("poolclass", StaticPool)
    else:
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, **kwargs)


def create_async_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # DTOs are built from loaded rows after commit.
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def init_async_db(engine: AsyncEngine) -> None:
    """Create every table from the ORM metadata (tests and local runs)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Created %d tables", len(Base.metadata.tables))


class DatabaseManager:
    """Lazily builds the engine and hands out transactional sessions.

    Connections come from a small bounded pool (`pool_size` plus
    `max_overflow`); callers queue for one under load.

    Args:
        database_url: SQLAlchemy URL of the datastore.
        pool_size: Persistent connections kept in the pool.
        max_overflow: Extra connections allowed above `pool_size`.
        echo: Log every SQL statement.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 0,
        echo: bool = False,
    ) -> None:
        self.database_url = database_url
        self._engine_options: dict[str, Any] = {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        }
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_db_engine(self.database_url, **self._engine_options)
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = create_async_session_factory(self.engine)
        return self._session_factory

    @asynccontextmanager
    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        """One unit of work: committed on normal exit, rolled back on error."""
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            await session.commit()

    async def init_schema_async(self) -> None:
        await init_async_db(self.engine)

    async def dispose_async(self) -> None:
        """Close pooled connections; the engine is rebuilt on next use."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database engine disposed")
