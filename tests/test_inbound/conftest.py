"""Shared fixtures for inbound ingestion tests."""

import pytest
from unittest.mock import AsyncMock, MagicMock


@pytest.fixture
def mock_session_factory():
    """Mock async session factory for testing database operations.

    Returns:
        A callable that returns an AsyncMock session with commit/rollback/flush
        methods and context manager support. Every call yields the same session.
    """
    session = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()

    factory = MagicMock()
    # Support `async with factory() as session:` pattern
    context = AsyncMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)
    factory.return_value = context

    factory._mock_session = session  # expose for assertions
    return factory
