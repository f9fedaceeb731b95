"""Celery tasks for the outbound automation queue and the trigger generators."""

import logging
from typing import Any, Optional
from uuid import UUID

from celery import shared_task

from workers.utils import get_task_session_factory, get_task_settings, run_async

logger = logging.getLogger(__name__)


@shared_task(
    name="workers.tasks.automation_tasks.process_message_queue",
    bind=True,
    max_retries=0,
    soft_time_limit=90,
    acks_late=True,
)
def process_message_queue(
    self,  # type: ignore[no-untyped-def]
    batch_size: Optional[int] = None,
    owner_id: Optional[str] = None,
) -> dict[str, Any]:
    """Run the queue processor once (scheduled every minute).

    Not retried: the next scheduled run picks up whatever is still eligible.

    Args:
        self: Celery task instance.
        batch_size: Rows per iteration (default from settings).
        owner_id: Optional owner filter.

    Returns:
        Dict with processed, failed, remaining and loops.
    """
    logger.info("process_message_queue_started: owner_id=%s", owner_id)
    result = run_async(_async_process_message_queue(batch_size=batch_size, owner_id=owner_id))
    logger.info("process_message_queue_completed: result=%s", result)
    return result


async def _async_process_message_queue(
    batch_size: Optional[int] = None,
    owner_id: Optional[str] = None,
) -> dict[str, Any]:
    from integrations import DatabaseIntegrationLoader, default_registry
    from src.automations.notifications import NotificationService
    from src.automations.queue_processor import QueueProcessor

    settings = get_task_settings()
    session_factory = get_task_session_factory()

    processor = QueueProcessor(
        session_factory=session_factory,
        registry=default_registry,
        integrations=DatabaseIntegrationLoader(session_factory),
        settings=settings,
        notifier=NotificationService(
            session_factory, enabled=settings.feature_flags.enable_notifications
        ),
    )
    result = await processor.run(
        batch_size=batch_size,
        owner_id=UUID(owner_id) if owner_id else None,
    )
    return result.model_dump()


@shared_task(
    name="workers.tasks.automation_tasks.run_scheduled_automation",
    bind=True,
    max_retries=2,
    soft_time_limit=600,
    acks_late=True,
)
def run_scheduled_automation(
    self,  # type: ignore[no-untyped-def]
    scheduled_type: str,
) -> dict[str, Any]:
    """Run one daily scan (birthday.check, inactive_client.check, promotion.broadcast).

    Safe to retry: a completed run for today is skipped, and a run that failed
    midway skips the clients its committed batches already queued.

    Args:
        self: Celery task instance (for retries).
        scheduled_type: Scan identifier.

    Returns:
        The generator summary as a dict.
    """
    logger.info("run_scheduled_automation_started: type=%s", scheduled_type)

    try:
        result = run_async(_async_run_scheduled_automation(scheduled_type))
        logger.info(
            "run_scheduled_automation_completed: type=%s, result=%s", scheduled_type, result
        )
        return result
    except ValueError:
        raise
    except Exception as exc:
        logger.warning(
            "run_scheduled_automation_failed: type=%s, error=%s, retry=%d/%d",
            scheduled_type,
            str(exc),
            self.request.retries,
            self.max_retries,
        )
        raise self.retry(exc=exc, countdown=60 * (2**self.request.retries))


async def _async_run_scheduled_automation(scheduled_type: str) -> dict[str, Any]:
    """Run the scan for ``scheduled_type``.

    Raises:
        ValueError: For an unknown scan type.
    """
    from src.automations.generators import BirthdayGenerator, InactiveClientGenerator, PromotionScan

    settings = get_task_settings()
    session_factory = get_task_session_factory()

    if scheduled_type == "birthday.check":
        generator = BirthdayGenerator(session_factory, batch_size=settings.generator_batch_size)
    elif scheduled_type == "inactive_client.check":
        generator = InactiveClientGenerator(
            session_factory, batch_size=settings.generator_batch_size
        )
    elif scheduled_type == "promotion.broadcast":
        generator = PromotionScan(session_factory)
    else:
        raise ValueError(f"Unknown scheduled type: {scheduled_type}")

    summary = await generator.run()
    return summary.model_dump()


@shared_task(
    name="workers.tasks.automation_tasks.broadcast_promotion",
    bind=True,
    max_retries=2,
    soft_time_limit=600,
    acks_late=True,
)
def broadcast_promotion(
    self,  # type: ignore[no-untyped-def]
    promotion_id: str,
) -> dict[str, Any]:
    """Fan a new promotion out to its owner's clients.

    Enqueued with a countdown so the promotion row has settled first.

    Args:
        self: Celery task instance (for retries).
        promotion_id: Promotion UUID as string.

    Returns:
        The broadcast summary as a dict.
    """
    logger.info("broadcast_promotion_started: promotion_id=%s", promotion_id)

    try:
        result = run_async(_async_broadcast_promotion(promotion_id))
        logger.info(
            "broadcast_promotion_completed: promotion_id=%s, result=%s", promotion_id, result
        )
        return result
    except Exception as exc:
        logger.warning(
            "broadcast_promotion_failed: promotion_id=%s, error=%s, retry=%d/%d",
            promotion_id,
            str(exc),
            self.request.retries,
            self.max_retries,
        )
        raise self.retry(exc=exc, countdown=60 * (2**self.request.retries))


async def _async_broadcast_promotion(promotion_id: str) -> dict[str, Any]:
    from src.automations.generators import PromotionBroadcaster
    from src.automations.notifications import NotificationService

    settings = get_task_settings()
    session_factory = get_task_session_factory()

    broadcaster = PromotionBroadcaster(
        session_factory,
        notifier=NotificationService(
            session_factory, enabled=settings.feature_flags.enable_notifications
        ),
        spacing_seconds=settings.promotion_spacing_seconds,
        batch_size=settings.generator_batch_size,
    )
    summary = await broadcaster.broadcast(UUID(promotion_id))
    return summary.model_dump()


@shared_task(
    name="workers.tasks.automation_tasks.enqueue_welcome",
    bind=True,
    max_retries=3,
    soft_time_limit=60,
    acks_late=True,
)
def enqueue_welcome(
    self,  # type: ignore[no-untyped-def]
    client_id: str,
) -> dict[str, Any]:
    """Queue the welcome message for a new client.

    Args:
        self: Celery task instance (for retries).
        client_id: Client UUID as string.
    """
    try:
        return run_async(_async_enqueue_welcome(client_id))
    except Exception as exc:
        logger.warning(
            "enqueue_welcome_failed: client_id=%s, error=%s, retry=%d/%d",
            client_id,
            str(exc),
            self.request.retries,
            self.max_retries,
        )
        raise self.retry(exc=exc, countdown=30 * (2**self.request.retries))


async def _async_enqueue_welcome(client_id: str) -> dict[str, Any]:
    from src.automations.generators import WelcomeGenerator

    summary = await WelcomeGenerator(get_task_session_factory()).enqueue(UUID(client_id))
    return summary.model_dump()


@shared_task(
    name="workers.tasks.automation_tasks.enqueue_order_confirmation",
    bind=True,
    max_retries=3,
    soft_time_limit=60,
    acks_late=True,
)
def enqueue_order_confirmation(
    self,  # type: ignore[no-untyped-def]
    order_id: str,
) -> dict[str, Any]:
    """Queue the confirmation message for a new order.

    Args:
        self: Celery task instance (for retries).
        order_id: Order UUID as string.
    """
    try:
        return run_async(_async_enqueue_order_confirmation(order_id))
    except Exception as exc:
        logger.warning(
            "enqueue_order_confirmation_failed: order_id=%s, error=%s, retry=%d/%d",
            order_id,
            str(exc),
            self.request.retries,
            self.max_retries,
        )
        raise self.retry(exc=exc, countdown=30 * (2**self.request.retries))


async def _async_enqueue_order_confirmation(order_id: str) -> dict[str, Any]:
    from src.automations.generators import OrderConfirmationGenerator

    summary = await OrderConfirmationGenerator(get_task_session_factory()).enqueue(
        UUID(order_id)
    )
    return summary.model_dump()
