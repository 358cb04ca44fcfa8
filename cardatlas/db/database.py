"""
Database engine and session management.

Provides the async SQLAlchemy engine, the session factory shared by request
handlers and the analytics sink, and the FastAPI session dependency.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cardatlas.config import settings
from cardatlas.models.db import Base


def _connect_args(database_url: str) -> dict[str, Any]:
    """Driver options. asyncpg enforces the search timeout server-side as well."""
    if database_url.startswith("postgresql+asyncpg"):
        return {"command_timeout": settings.search_query_timeout_seconds}
    return {}


def build_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(
        database_url,
        echo=settings.debug,
        pool_pre_ping=True,
        connect_args=_connect_args(database_url),
    )


engine = build_engine(settings.database_url)

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Commits when the handler returns. Handlers that must act after the
    commit (cache invalidation) commit explicitly first.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Create tables defined in the ORM models.

    Called once at application startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db() -> None:
    """Close pooled connections at shutdown."""
    await engine.dispose()
