"""Celery Beat schedule for the automation triggers."""

import logging
from typing import Any

from celery import Celery
from celery.schedules import crontab

logger = logging.getLogger(__name__)


BEAT_SCHEDULE: dict[str, dict[str, Any]] = {
    "process-message-queue": {
        "task": "workers.tasks.automation_tasks.process_message_queue",
        "schedule": crontab(minute="*"),  # Every minute
        "options": {"queue": "default", "expires": 55},
    },
    "birthday-check": {
        "task": "workers.tasks.automation_tasks.run_scheduled_automation",
        "schedule": crontab(hour=9, minute=0),  # Daily at 9 AM UTC
        "args": ["birthday.check"],
        "options": {"queue": "default"},
    },
    "inactive-client-check": {
        "task": "workers.tasks.automation_tasks.run_scheduled_automation",
        "schedule": crontab(hour=10, minute=0),  # Daily at 10 AM UTC
        "args": ["inactive_client.check"],
        "options": {"queue": "default"},
    },
    "promotion-scan": {
        "task": "workers.tasks.automation_tasks.run_scheduled_automation",
        "schedule": crontab(hour=11, minute=0),  # Daily at 11 AM UTC
        "args": ["promotion.broadcast"],
        "options": {"queue": "default"},
    },
}


def configure_beat_schedule(app: Celery) -> None:
    """Apply the beat schedule to a Celery application.

    Args:
        app: Celery application instance to configure.
    """
    app.conf.beat_schedule = dict(BEAT_SCHEDULE)
    logger.info("beat_schedule_configured: entries=%d", len(BEAT_SCHEDULE))
