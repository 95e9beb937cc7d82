from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from ecotrack.infrastructure.models import Base


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for ``database_url``.

    SQLite connections are not pooled so an engine can be driven from more
    than one event loop (the app's and a test's ``asyncio.run``).
    """

    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, poolclass=NullPool)
    return create_async_engine(database_url, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet (local and test databases)."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db_session(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields an AsyncSession."""

    async with request.app.state.session_factory() as session:
        yield session
