"""Shared test fixtures for all test categories."""

from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from dev.mocks.clients import MockContentStore

FIXED_NOW = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock():
    """Clock frozen at 2024-01-01T00:00:00Z."""

    return lambda: FIXED_NOW


@pytest.fixture
def store() -> MockContentStore:
    """Fresh in-memory data repository whose main branch points at abc123."""

    return MockContentStore(initial_sha="abc123")


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    from src.privacy_gateway.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
