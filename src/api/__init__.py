"""FastAPI REST API package."""

from src.api.app import create_app, lifespan
from src.api.dependencies import (
    get_db,
    get_queue_processor,
    get_redis_manager,
    get_scheduled_runners,
    get_session_factory,
    get_settings,
    verify_cron_secret,
)

__all__ = [
    "create_app",
    "lifespan",
    "get_db",
    "get_queue_processor",
    "get_redis_manager",
    "get_scheduled_runners",
    "get_session_factory",
    "get_settings",
    "verify_cron_secret",
]
