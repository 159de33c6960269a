"""Database engine and sessions (SQLModel on async SQLAlchemy).

The engine is created lazily from ``database.url`` so tests and the CLI
can swap settings before first use. Tables are created on startup; the
schema is only ever extended by adding tables.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

# Registers every table on SQLModel.metadata
import apihost.models  # noqa: F401
from apihost.config import get_settings

logger = structlog.get_logger()

_engine: AsyncEngine | None = None
_session_factory = None


def _get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(settings.database.url, echo=settings.database.echo)
    return _engine


def _get_session_factory():
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            _get_engine(), class_=AsyncSession, expire_on_commit=False
        )
    return _session_factory


async def init_db() -> None:
    """Create missing tables."""
    async with _get_engine().begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("db.init", tables=sorted(SQLModel.metadata.tables))


async def close_db() -> None:
    """Dispose the engine; the next session starts a fresh one."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on clean exit and rolls back on error."""
    async with _get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with get_async_session() as session:
        yield session
