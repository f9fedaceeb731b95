"""FastAPI application factory with async lifespan management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from src.cache.client import RedisManager
from src.db.engine import get_engine, get_session_factory
from src.settings import load_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Set the root log level (idempotent)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage FastAPI application lifespan (startup and shutdown).

    Handles initialization and cleanup of:
    - Database engine and the shared session factory (if database_url is configured)
    - Redis connection pool (if redis_url is configured)

    Resources are stored in app.state for access by routes and dependencies.

    Args:
        app: FastAPI application instance.

    Yields:
        None during the application runtime (between startup and shutdown).
    """
    settings = load_settings()
    app.state.settings = settings
    configure_logging(settings.log_level)
    logger.info("app_startup: env=%s", settings.app_env)

    engine: Optional[AsyncEngine] = None
    app.state.engine = None
    app.state.session_factory = None
    if settings.database_url:
        try:
            engine = await get_engine(
                database_url=settings.database_url,
                pool_size=settings.database_pool_size,
                pool_overflow=settings.database_pool_overflow,
            )
            app.state.engine = engine
            app.state.session_factory = get_session_factory(engine)
            logger.info("db_engine_initialized: url=postgresql+asyncpg://...")
        except Exception as e:
            logger.exception("db_engine_init_error: error=%s", e)
    else:
        logger.info("db_engine_skipped: database_url not configured")

    redis_manager: Optional[RedisManager] = None
    app.state.redis = None
    if settings.redis_url:
        try:
            redis_manager = RedisManager(
                redis_url=settings.redis_url, key_prefix=settings.redis_key_prefix
            )
            client = await redis_manager.get_client()
            if client:
                app.state.redis = redis_manager
                logger.info("redis_initialized: url=redis://...")
            else:
                logger.warning("redis_connection_failed: client returned None")
        except Exception as e:
            logger.exception("redis_init_error: error=%s", e)
    else:
        logger.info("redis_skipped: redis_url not configured")

    logger.info("app_startup_complete: resources initialized")
    yield

    logger.info("app_shutdown: cleaning up resources")

    if redis_manager is not None:
        try:
            await redis_manager.close()
            logger.info("redis_closed: connection pool disposed")
        except Exception as e:
            logger.warning("redis_close_error: error=%s", e)

    if engine is not None:
        try:
            await engine.dispose()
            logger.info("db_engine_disposed: connection pool closed")
        except Exception as e:
            logger.warning("db_engine_dispose_error: error=%s", e)

    logger.info("app_shutdown_complete: all resources cleaned up")


def create_app() -> FastAPI:
    """Create and configure FastAPI application instance.

    Returns:
        Configured FastAPI application with lifespan, routes and middleware.
    """
    app = FastAPI(
        title="Messaging Automations API",
        version="0.1.0",
        description="Outbound automation queue, trigger generators and Meta webhook ingestion",
        lifespan=lifespan,
    )

    # Middleware registration order: Starlette executes in LIFO (last registered = first to run).
    # Execution order: ErrorHandler -> RequestID -> RequestLogging
    from src.api.middleware.observability import RequestLoggingMiddleware

    app.add_middleware(RequestLoggingMiddleware)

    from src.api.middleware.request_id import RequestIdMiddleware

    app.add_middleware(RequestIdMiddleware)

    from src.api.middleware.error_handler import error_handling_middleware

    app.middleware("http")(error_handling_middleware)

    from src.api.routers import automations_router, health_router, webhooks_router

    # Health checks (no prefix, paths start with /health and /ready)
    app.include_router(health_router, tags=["health"])

    # Routers carry their /v1/* prefixes
    app.include_router(automations_router)
    app.include_router(webhooks_router)

    logger.info(
        "app_created: title=Messaging Automations API, version=0.1.0, routers=3, "
        "middleware=error_handler,request_id,request_logging"
    )
    return app
