"""
db/session.py
-------------
Async SQLAlchemy engine and session factory.

Design decisions:
  - AsyncEngine: asyncpg in production, aiosqlite for local runs and tests.
  - Server databases get a pool sized for typical workloads:
      pool_size=10, max_overflow=20 → max 30 concurrent DB connections.
    SQLite keeps the dialect's default pool.
  - pool_pre_ping=True: validates connections before checkout to handle
    stale connections after DB restarts or idle timeouts.
  - expire_on_commit=False: avoids lazy-load errors after commit in async
    context (attributes are already loaded, no implicit SELECT needed).
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from iamsql.core.config import settings


def create_engine(url: Optional[str] = None, **kwargs) -> AsyncEngine:
    url = url or settings.DATABASE_URL
    options = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(pool_size=10, max_overflow=20, pool_recycle=3600)
    options.update(kwargs)
    return create_async_engine(url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """
    Yield a database session, committed when the block succeeds and
    rolled back on exceptions.

    Usage:
        async with session_scope(factory) as db:
            await credentials.lock(db, "admin", user)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
