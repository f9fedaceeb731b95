"""Celery application factory and configuration."""

import logging
from typing import Optional

from celery import Celery

logger = logging.getLogger(__name__)

_app: Optional[Celery] = None

TASK_MODULES = [
    "workers.tasks.automation_tasks",
    "workers.tasks.inbound_tasks",
]


def get_celery_app() -> Celery:
    """Get or create the singleton Celery application.

    Returns:
        Configured Celery app instance with Redis broker, JSON serialization
        and the automation beat schedule.
    """
    global _app
    if _app is not None:
        return _app

    from src.settings import load_settings
    from workers.schedules import configure_beat_schedule

    settings = load_settings()
    broker_url = settings.redis_url or "redis://localhost:6379/0"

    app = Celery("msgauto_workers", include=TASK_MODULES)
    app.conf.update(
        broker_url=broker_url,
        result_backend=broker_url,
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_track_started=True,
        task_default_queue="default",
        broker_connection_retry_on_startup=True,
        timezone="UTC",
        enable_utc=True,
    )
    configure_beat_schedule(app)

    logger.info("celery_app_created: broker=%s", broker_url.split("@")[-1])

    _app = app
    return app


# Entry point for `celery -A workers.celery_app worker|beat`
app = get_celery_app()
