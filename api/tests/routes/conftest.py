"""Route test configuration.

- Rate limiting is disabled so route handlers can be called directly
- The DB session and auth dependencies are overridden; services are patched
  per test, so no database is needed
"""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting so route handlers can be called directly."""
    with patch("core.ratelimit.limiter.enabled", False):
        yield


@pytest.fixture
def db_session_mock() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def app(db_session_mock: AsyncMock) -> Generator[FastAPI]:
    """FastAPI app with the DB dependency overridden and a fresh queue."""
    from core.database import get_db
    from main import app as fastapi_app
    from services.inbox_queue_service import InboxProcessingQueue

    async def _override_db():
        yield db_session_mock

    fastapi_app.dependency_overrides[get_db] = _override_db
    fastapi_app.state.inbox_queue = InboxProcessingQueue()
    fastapi_app.state.init_done = True
    fastapi_app.state.init_error = None

    yield fastapi_app

    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def authenticated_client(
    app: FastAPI, test_user_id: str
) -> AsyncGenerator[AsyncClient]:
    """Client whose requests are authenticated as ``test_user_id``."""
    from core.auth import require_auth

    app.dependency_overrides[require_auth] = lambda: test_user_id
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def unauthenticated_client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Client without a session cookie."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
