"""
Database connection management for queue processes.

Each worker or supervisor process owns one async engine. Stores receive the
session factory and open one short transaction per operation.
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from dnstest_queue.config import Settings, get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """
    Get the process engine, creating it from the settings on first use.

    Pre-ping discards connections the server closed while a worker sat idle
    on an empty queue.
    """
    global _engine
    if _engine is None:
        settings = settings or get_settings()
        _engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
    return _engine


def get_test_engine(database_url: str) -> AsyncEngine:
    """Create an unpooled engine, so tests never share connections across event loops."""
    return create_async_engine(database_url, poolclass=NullPool)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory whose objects stay readable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_db(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """
    Open the process engine and return its session factory.

    Call once on process startup, before building the stores.
    """
    global _session_factory
    if _session_factory is None:
        engine = get_engine(settings)
        _session_factory = create_session_factory(engine)
        logger.info("Job store connected", extra={"database": engine.url.render_as_string()})
    return _session_factory


async def close_db() -> None:
    """Dispose the process engine. Call once on process shutdown."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Job store disconnected")
