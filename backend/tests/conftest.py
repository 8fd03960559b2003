"""Shared fixtures for API and storage tests."""

from collections.abc import AsyncGenerator, Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models.base import get_async_session


@pytest.fixture
def session() -> AsyncMock:
    """A mock AsyncSession; ``add`` and ``begin_nested`` are not coroutines."""
    mock = AsyncMock()
    mock.add = MagicMock()
    mock.begin_nested = MagicMock()
    return mock


@pytest.fixture
def client(session: AsyncMock) -> Iterator[TestClient]:
    """TestClient with the database session dependency replaced by a mock."""

    async def _override() -> AsyncGenerator[AsyncMock, None]:
        yield session

    app.dependency_overrides[get_async_session] = _override
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
