"""Shared fixtures for queue processor and trigger generator tests."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import pytest

from src.settings import Settings


@pytest.fixture
def fixed_now() -> datetime:
    """Fixed reference time (a Friday, mid-day UTC)."""
    return datetime(2024, 11, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_session_factory():
    """Mock async session factory; every call yields the same session.

    Returns:
        A callable supporting ``async with factory() as session:`` with the
        session exposed as ``factory._mock_session``.
    """
    session = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()

    factory = MagicMock()
    context = AsyncMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)
    factory.return_value = context

    factory._mock_session = session
    return factory


@pytest.fixture
def queue_settings() -> Settings:
    """Settings tuned for queue processor tests."""
    return Settings(
        queue_batch_size=100,
        queue_deadline_seconds=55,
        queue_concurrency=10,
        max_retries=3,
        provider_timeout_seconds=10,
    )


@pytest.fixture
def notifier() -> AsyncMock:
    """Notification sink; ``notify`` calls are asserted by the tests."""
    notifier = AsyncMock()
    notifier.notify = AsyncMock(return_value=True)
    return notifier


@pytest.fixture
def sender() -> MagicMock:
    """Platform sender whose ``send`` result each test configures."""
    sender = MagicMock()
    sender.send = AsyncMock()
    return sender


@pytest.fixture
def registry(sender: MagicMock) -> MagicMock:
    registry = MagicMock()
    registry.get_sender.return_value = sender
    return registry


@pytest.fixture
def owner_id() -> UUID:
    return UUID("12345678-1234-5678-1234-567812345678")


@pytest.fixture
def business() -> SimpleNamespace:
    return SimpleNamespace(
        name="Café Sur",
        description="Café de especialidad",
        location="Mendoza",
        menu_link="https://cafesur.example/menu",
        welcome_delay_minutes=None,
    )
