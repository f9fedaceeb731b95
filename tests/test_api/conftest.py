"""Shared fixtures for API router tests."""

import pytest
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.app import create_app
from src.api.dependencies import (
    get_db,
    get_queue_processor,
    get_redis_manager,
    get_scheduled_runners,
    get_settings,
)
from src.automations.generators import GeneratorSummary
from src.automations.queue_processor import ProcessQueueResult
from src.settings import FeatureFlags, Settings

CRON_SECRET = "test-cron-secret"


@pytest.fixture
def db_session() -> AsyncSession:
    """Mock AsyncSession for database operations.

    Returns:
        An AsyncMock configured as AsyncSession.
    """
    mock_session = AsyncMock(spec=AsyncSession)
    mock_session.execute = AsyncMock()
    mock_session.commit = AsyncMock()
    mock_session.rollback = AsyncMock()
    mock_session.close = AsyncMock()
    mock_session.add = MagicMock()
    mock_session.flush = AsyncMock()
    return mock_session


@pytest.fixture
def test_settings() -> Settings:
    """Settings with the cron secret set and signature checks off."""
    return Settings(
        database_url=None,
        redis_url=None,
        cron_secret=CRON_SECRET,
        meta_app_secret=None,
        promotion_settle_seconds=5,
        feature_flags=FeatureFlags(),
    )


@pytest.fixture
def queue_processor() -> MagicMock:
    """Queue processor whose run returns fixed counters."""
    processor = MagicMock()
    processor.run = AsyncMock(
        return_value=ProcessQueueResult(processed=3, failed=1, remaining=0, loops=1)
    )
    return processor


@pytest.fixture
def scheduled_runners() -> dict[str, AsyncMock]:
    """Scan coroutines keyed by scheduled type."""
    return {
        "birthday.check": AsyncMock(
            return_value=GeneratorSummary(
                automation_type="birthday",
                automations=1,
                total_eligible=2,
                messages_queued=2,
            )
        ),
        "inactive_client.check": AsyncMock(
            return_value=GeneratorSummary(automation_type="inactive_client", already_processed=True)
        ),
        "promotion.broadcast": AsyncMock(
            return_value=GeneratorSummary(automation_type="promotion", promotions_found=4)
        ),
    }


@pytest.fixture
async def app(
    db_session: AsyncSession,
    test_settings: Settings,
    queue_processor: MagicMock,
    scheduled_runners: dict[str, AsyncMock],
):
    """FastAPI application instance for testing.

    Creates a FastAPI app with test overrides:
    - Shared mock database session (from db_session fixture)
    - No Redis manager
    - Test settings with a cron secret
    - Mock queue processor and scan runners

    Yields:
        Configured FastAPI application.
    """
    test_app = create_app()

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_redis_manager] = lambda: None
    test_app.dependency_overrides[get_settings] = lambda: test_settings
    test_app.dependency_overrides[get_queue_processor] = lambda: queue_processor
    test_app.dependency_overrides[get_scheduled_runners] = lambda: scheduled_runners

    yield test_app

    test_app.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient without the cron secret header."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def cron_client(app) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient with the X-Cron-Secret header pre-configured."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Cron-Secret": CRON_SECRET},
    ) as ac:
        yield ac
