"""Shared fixtures: in-memory database, settings and seeded users."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import apihost.models  # noqa: F401
from apihost.config import Settings
from tests.fakes import MemoryArtifactStorage, make_user


@pytest.fixture
def fake_settings() -> Settings:
    """Test settings with a fast bcrypt work factor and tight sandbox timings."""
    return Settings(
        database={"url": "sqlite+aiosqlite:///:memory:"},
        security={"jwt_secret": "test-secret-0123456789abcdef0123456789", "bcrypt_rounds": 4},
        sandbox={
            "executor_url": "http://fake-executor:8081",
            "default_timeout_seconds": 5,
            "max_timeout_seconds": 10,
            "grace_seconds": 0.5,
            "retry_delay_seconds": 0.0,
        },
    )


@pytest.fixture
async def db_session():
    """Create in-memory SQLite database and session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async_session_factory = sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def storage() -> MemoryArtifactStorage:
    return MemoryArtifactStorage()


@pytest.fixture
async def owner_id(db_session: AsyncSession) -> str:
    # Plain ids: registry writes roll the session back, expiring loaded users
    return (await make_user(db_session, "owner@example.com")).id


@pytest.fixture
async def stranger_id(db_session: AsyncSession) -> str:
    return (await make_user(db_session, "stranger@example.com")).id
