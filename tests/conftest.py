"""Pytest fixtures for payroll reconciliation tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from helpers import Seeder
from payroll_recon.database import create_all, enable_sqlite_savepoints, make_session_factory
from payroll_recon.services.authorization import Actor, Role

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    await create_all(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = make_session_factory(engine)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def seed(session: AsyncSession) -> Seeder:
    return Seeder(session)


@pytest.fixture
def admin() -> Actor:
    return Actor(actor_id="admin@example.com", role=Role.ADMIN)


@pytest.fixture
def owner() -> Actor:
    return Actor(actor_id="owner@example.com", role=Role.OWNER)
