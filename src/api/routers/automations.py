"""Automation trigger endpoints: queue processing, daily scans and database events."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    ScheduledRunner,
    get_db,
    get_queue_processor,
    get_scheduled_runners,
    get_settings,
    verify_cron_secret,
)
from src.api.schemas.automations import (
    DatabaseEvent,
    DatabaseEventResponse,
    ProcessQueueRequest,
    ProcessQueueResponse,
    QueueStatusResponse,
    ScheduledRunRequest,
    ScheduledRunResponse,
    ScheduledStatusResponse,
)
from src.automations.queue_processor import QueueProcessor
from src.db.repositories.automation_repo import AutomationExecutionRepository
from src.db.repositories.scheduled_message_repo import ScheduledMessageRepository
from src.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/automations",
    tags=["automations"],
    dependencies=[Depends(verify_cron_secret)],
)

# Source tables accepted from database change events.
CLIENT_TABLES = {"clients", "client"}
ORDER_TABLES = {"orders", "customer_order"}
PROMOTION_TABLES = {"promotions", "promotion"}


@router.post("/process-queue", response_model=ProcessQueueResponse)
async def process_queue(
    body: Optional[ProcessQueueRequest] = None,
    processor: QueueProcessor = Depends(get_queue_processor),
) -> ProcessQueueResponse:
    """
    Run the queue processor once.

    Args:
        body: Optional batch size and owner filter.
        processor: Queue processor from dependency injection.

    Returns:
        ProcessQueueResponse with processed/failed/remaining/loops.
    """
    body = body or ProcessQueueRequest()
    result = await processor.run(batch_size=body.batch_size, owner_id=body.owner_id)
    return ProcessQueueResponse(**result.model_dump())


@router.get("/process-queue", response_model=QueueStatusResponse)
async def queue_status(db: AsyncSession = Depends(get_db)) -> QueueStatusResponse:
    """Scheduled message counts grouped by status."""
    by_status = await ScheduledMessageRepository(db).status_counts()
    return QueueStatusResponse(
        total=sum(by_status.values()),
        by_status=by_status,
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/scheduled", response_model=ScheduledRunResponse)
async def run_scheduled(
    body: ScheduledRunRequest,
    runners: dict[str, ScheduledRunner] = Depends(get_scheduled_runners),
) -> ScheduledRunResponse:
    """
    Run one daily scan.

    Args:
        body: ``{"type": "birthday.check" | "inactive_client.check" | "promotion.broadcast"}``.
        runners: Scan coroutines keyed by type.

    Returns:
        ScheduledRunResponse with the run's counters.

    Raises:
        HTTPException: 400 for an unknown type.
    """
    runner = runners.get(body.type)
    if runner is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown scheduled type: {body.type}. Available: {sorted(runners)}",
        )

    logger.info("scheduled_run_started: type=%s", body.type)
    summary = await runner()
    return ScheduledRunResponse(
        type=body.type,
        date=datetime.now(timezone.utc).date(),
        **summary.model_dump(exclude={"automation_type"}),
    )


@router.get("/scheduled", response_model=ScheduledStatusResponse)
async def scheduled_status(db: AsyncSession = Depends(get_db)) -> ScheduledStatusResponse:
    """Today's execution count and the pending queue size."""
    now = datetime.now(timezone.utc)
    executions_today = await AutomationExecutionRepository(db).count_for_date(now.date())
    pending = await ScheduledMessageRepository(db).count_pending()
    return ScheduledStatusResponse(
        date=now.date(),
        executions_today=executions_today,
        pending_messages=pending,
        last_check=now,
    )


@router.post("/events", response_model=DatabaseEventResponse)
async def database_event(
    event: DatabaseEvent,
    settings: Settings = Depends(get_settings),
) -> DatabaseEventResponse:
    """
    Turn a row change into a background generator job.

    New clients get the welcome message, new orders the confirmation and
    new promotions are broadcast after a short settle delay. Other events
    are acknowledged without action.

    Raises:
        HTTPException: 400 if the record has no id.
    """
    if event.type != "INSERT":
        return DatabaseEventResponse(action=None)

    record_id = event.record.get("id")
    if not record_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event record has no id",
        )
    record_id = str(record_id)

    from workers.tasks.automation_tasks import (
        broadcast_promotion,
        enqueue_order_confirmation,
        enqueue_welcome,
    )

    if event.table in CLIENT_TABLES:
        enqueue_welcome.delay(client_id=record_id)
        action = "welcome"
    elif event.table in ORDER_TABLES:
        enqueue_order_confirmation.delay(order_id=record_id)
        action = "order_confirmation"
    elif event.table in PROMOTION_TABLES:
        if event.record.get("is_active") is False:
            return DatabaseEventResponse(action=None)
        broadcast_promotion.apply_async(
            kwargs={"promotion_id": record_id},
            countdown=settings.promotion_settle_seconds,
        )
        action = "promotion_broadcast"
    else:
        logger.info("database_event_ignored: table=%s", event.table)
        return DatabaseEventResponse(action=None)

    logger.info("database_event_enqueued: table=%s, action=%s, id=%s", event.table, action, record_id)
    return DatabaseEventResponse(action=action)
