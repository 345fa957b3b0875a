"""Async engine and session factory.

The `async_sessionmaker` returned by `build_session_factory` is the single persistence handle
handed to the ledger, sender repository, message repository and orchestrator; nothing in the
package opens its own engine.
"""
from __future__ import annotations

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from sendcore.core.settings import Settings, get_settings
from sendcore.models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite's deferred BEGIN lets two connections both read and then race to upgrade,
    which SQLite reports as `database is locked` instead of waiting. BEGIN IMMEDIATE
    serializes writers through the busy timeout instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(settings: Settings | None = None) -> AsyncEngine:
    settings = settings or get_settings()
    url = settings.DATABASE_URL
    if settings.is_sqlite:
        engine = create_async_engine(url, echo=False, future=True, connect_args={"timeout": 30})
        _enable_sqlite_immediate_transactions(engine)
    else:
        # Row locks taken by the conditional balance UPDATE are enough under READ COMMITTED
        engine = create_async_engine(
            url,
            echo=False,
            future=True,
            pool_pre_ping=True,
            pool_recycle=300,
            isolation_level="READ COMMITTED",
        )
    safe_url = url.split("@")[1] if "@" in url else url
    logger.info("Database engine configured: ...@%s", safe_url)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create tables directly (tests / local SQLite). Production uses Alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = ["build_engine", "build_session_factory", "create_all"]
