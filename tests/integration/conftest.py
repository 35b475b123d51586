"""Integration test fixtures for the HTTP API."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from payroll_recon.api.app import create_app
from payroll_recon.api.dependencies import get_db_session
from payroll_recon.database import make_session_factory


@pytest_asyncio.fixture
async def client(engine: AsyncEngine) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing.

    Requests get their own session on the test engine. Seed data must be
    committed before the first request.
    """
    app = create_app()
    session_factory = make_session_factory(engine)

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
