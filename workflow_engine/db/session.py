"""Database session management."""

from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from ..core.config import settings

DATABASE_URL = settings.database_url or "sqlite+aiosqlite:///./workflows.db"


def create_engine(url: str = DATABASE_URL) -> AsyncEngine:
    return create_async_engine(url, echo=settings.debug, future=True)


def create_session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


engine = create_engine()

async_session_factory = create_session_factory(engine)


async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Initialize database tables."""
    from . import models  # noqa: F401  registers the tables on SQLModel.metadata

    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    async with async_session_factory() as session:
        yield session
