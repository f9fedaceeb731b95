"""FastAPI dependency injection for database, settings and service objects."""

import hmac
import logging
from typing import AsyncGenerator, Awaitable, Callable, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from integrations import DatabaseIntegrationLoader, default_registry
from src.automations.generators import (
    BirthdayGenerator,
    GeneratorSummary,
    InactiveClientGenerator,
    PromotionScan,
)
from src.automations.notifications import NotificationService
from src.automations.queue_processor import QueueProcessor
from src.cache.client import RedisManager
from src.db.engine import get_session, get_session_factory as build_session_factory
from src.settings import Settings, load_settings

logger = logging.getLogger(__name__)

ScheduledRunner = Callable[[], Awaitable[GeneratorSummary]]


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Get async database session from app.state.engine.

    Yields an AsyncSession that is automatically closed after use.
    Requires app.state.engine to be initialized during lifespan.

    Args:
        request: FastAPI request object with app.state.engine.

    Yields:
        AsyncSession instance for database operations.

    Raises:
        RuntimeError: If app.state.engine is not initialized.
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        logger.error("get_db_error: reason=engine_not_initialized")
        raise RuntimeError(
            "Database engine not initialized. Ensure DATABASE_URL is set and app lifespan has run."
        )

    async for session in get_session(engine):
        yield session


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """
    Get the shared session factory from app.state.session_factory.

    The queue processor and generators open their own short-lived sessions
    from this factory.

    Raises:
        RuntimeError: If the database engine was not initialized.
    """
    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        engine = getattr(request.app.state, "engine", None)
        if engine is None:
            logger.error("get_session_factory_error: reason=engine_not_initialized")
            raise RuntimeError(
                "Database engine not initialized. Ensure DATABASE_URL is set and app lifespan has run."
            )
        factory = build_session_factory(engine)
        request.app.state.session_factory = factory
    return factory


def get_settings(request: Request) -> Settings:
    """
    Get application settings from app.state.settings.

    Falls back to load_settings() when the lifespan has not populated it.

    Args:
        request: FastAPI request object with app.state.

    Returns:
        Settings instance with application configuration.
    """
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        logger.warning(
            "get_settings_fallback: app.state.settings not initialized, loading directly"
        )
        settings = load_settings()
    return settings


def get_redis_manager(request: Request) -> Optional[RedisManager]:
    """
    Get Redis manager from app.state.redis.

    Returns None when Redis is not configured or unavailable (graceful degradation).
    """
    redis_manager = getattr(request.app.state, "redis", None)
    if redis_manager is None:
        logger.debug("get_redis_manager: redis not configured")
    return redis_manager


async def verify_cron_secret(
    x_cron_secret: Optional[str] = Header(None, alias="X-Cron-Secret"),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Require the shared cron secret on trigger endpoints.

    No-op when ``CRON_SECRET`` is not configured.

    Raises:
        HTTPException: 401 if the header is missing or wrong.
    """
    expected = settings.cron_secret
    if not expected:
        return
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, expected):
        logger.warning("cron_secret_rejected: header_present=%s", bool(x_cron_secret))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-Cron-Secret",
        )


def get_notification_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> NotificationService:
    return NotificationService(
        session_factory, enabled=settings.feature_flags.enable_notifications
    )


def get_queue_processor(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
    notifier: NotificationService = Depends(get_notification_service),
) -> QueueProcessor:
    """
    Build a QueueProcessor wired to the default sender registry.

    Credentials are read through a DatabaseIntegrationLoader on the same
    session factory.
    """
    return QueueProcessor(
        session_factory=session_factory,
        registry=default_registry,
        integrations=DatabaseIntegrationLoader(session_factory),
        settings=settings,
        notifier=notifier,
    )


def get_scheduled_runners(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> dict[str, ScheduledRunner]:
    """Map each scheduled trigger type to the coroutine that runs it."""
    return {
        "birthday.check": BirthdayGenerator(
            session_factory, batch_size=settings.generator_batch_size
        ).run,
        "inactive_client.check": InactiveClientGenerator(
            session_factory, batch_size=settings.generator_batch_size
        ).run,
        "promotion.broadcast": PromotionScan(session_factory).run,
    }
