"""Celery task for inbound webhook messages."""

import logging
from typing import Any

from celery import shared_task

from workers.utils import get_task_session_factory, get_task_settings, run_async

logger = logging.getLogger(__name__)


@shared_task(
    name="workers.tasks.inbound_tasks.handle_inbound_message",
    bind=True,
    max_retries=2,
    soft_time_limit=120,
    acks_late=True,
)
def handle_inbound_message(
    self,  # type: ignore[no-untyped-def]
    message: dict,
) -> dict[str, Any]:
    """Ingest one normalized inbound message and reply to it.

    A retry after the message was stored is recognized as a duplicate by
    its provider message id.

    Args:
        self: Celery task instance (for retries).
        message: ``IncomingMessage`` serialized in JSON mode.

    Returns:
        Dict with the ingest status and conversation id.
    """
    provider_message_id = message.get("provider_message_id")
    logger.info("handle_inbound_message_started: provider_message_id=%s", provider_message_id)

    try:
        result = run_async(_async_handle_inbound_message(message))
        logger.info(
            "handle_inbound_message_completed: provider_message_id=%s, status=%s",
            provider_message_id,
            result["status"],
        )
        return result
    except Exception as exc:
        logger.warning(
            "handle_inbound_message_failed: provider_message_id=%s, error=%s, retry=%d/%d",
            provider_message_id,
            str(exc),
            self.request.retries,
            self.max_retries,
        )
        raise self.retry(exc=exc, countdown=30 * (2**self.request.retries))


async def _async_handle_inbound_message(message: dict) -> dict[str, Any]:
    from integrations import DatabaseIntegrationLoader, default_registry
    from integrations.models import IncomingMessage
    from src.cache.client import RedisManager
    from src.cache.dedup import RedisDedupStore
    from src.inbound.ingestor import InboundIngestor
    from src.inbound.responder import ResponderClient

    settings = get_task_settings()
    session_factory = get_task_session_factory()

    redis_manager = None
    dedup = _local_dedup()
    if settings.feature_flags.enable_redis_dedup and settings.redis_url:
        redis_manager = RedisManager(settings.redis_url, key_prefix=settings.redis_key_prefix)
        dedup = RedisDedupStore(redis_manager, fallback=dedup)

    ingestor = InboundIngestor(
        session_factory=session_factory,
        dedup=dedup,
        registry=default_registry,
        integrations=DatabaseIntegrationLoader(session_factory),
        settings=settings,
        responder=ResponderClient(
            settings.responder_base_url,
            path=settings.responder_path,
            timeout=settings.responder_timeout_seconds,
        ),
    )
    try:
        result = await ingestor.handle(IncomingMessage.model_validate(message))
    finally:
        if redis_manager is not None:
            await redis_manager.close()
    return result.model_dump(mode="json")


_dedup_store = None


def _local_dedup():  # type: ignore[no-untyped-def]
    """Per-process in-memory dedup window (shared by tasks in one worker)."""
    global _dedup_store
    if _dedup_store is None:
        from src.cache.dedup import InMemoryDedupStore

        _dedup_store = InMemoryDedupStore()
    return _dedup_store
