"""Dispatch loop for the scheduled message queue.

Selects eligible messages, claims them in small chunks, sends each chunk
concurrently and records every attempt (audit row first, then status).
"""

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID

import httpx
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from integrations.credentials import IntegrationLoader
from integrations.models import BotRef, OutboundMessage, SendResult
from integrations.registry import SenderRegistry
from src.automations.notifications import NotificationService
from src.db.models.automation import AutomationLogTypeEnum
from src.db.models.business import PlatformEnum
from src.db.models.scheduled_message import ScheduledMessageORM
from src.db.models.tracking import NotificationKindEnum, UsageLogORM
from src.db.repositories.automation_repo import AutomationLogRepository
from src.db.repositories.scheduled_message_repo import ScheduledMessageRepository
from src.inbound.conversations import ConversationResolver
from src.settings import Settings

logger = logging.getLogger(__name__)

AUTOMATIONS_LINK = "/dashboard/automatizaciones"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _utc_date(value: datetime):
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date()


def next_retry_count(
    retry_count: int,
    last_updated_at: Optional[datetime],
    now: datetime,
) -> int:
    """Retry count to store after a failed attempt.

    The first failure always counts. Later failures count only when the
    message was last updated on a different UTC calendar day, so repeated
    same-day failures consume one attempt in total. A failure at 23:59
    followed by one at 00:01 therefore counts twice.

    Args:
        retry_count: Count stored before this attempt.
        last_updated_at: The message's ``updated_at`` before it was claimed.
        now: Time of this failure.

    Returns:
        The new retry count.
    """
    if retry_count == 0 or last_updated_at is None:
        return retry_count + 1
    if _utc_date(last_updated_at) != _utc_date(now):
        return retry_count + 1
    return retry_count


class ProcessQueueResult(BaseModel):
    """Counters of one queue processor invocation."""

    processed: int = 0
    failed: int = 0
    remaining: int = 0
    loops: int = 0


@dataclass
class QueuedMessage:
    """Snapshot of a scheduled message taken before it is claimed."""

    id: UUID
    owner_id: UUID
    bot_id: UUID
    platform: PlatformEnum
    automation_id: Optional[UUID]
    client_id: Optional[UUID]
    automation_type: Optional[str]
    content: str
    subject: Optional[str]
    recipient_name: Optional[str]
    recipient_phone: Optional[str]
    recipient_instagram_id: Optional[str]
    recipient_email: Optional[str]
    retry_count: int
    updated_at: Optional[datetime]
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_orm_row(cls, row: ScheduledMessageORM) -> "QueuedMessage":
        return cls(
            id=row.id,
            owner_id=row.owner_id,
            bot_id=row.bot_id,
            platform=PlatformEnum(row.platform),
            automation_id=row.automation_id,
            client_id=row.client_id,
            automation_type=row.automation_type,
            content=row.content,
            subject=row.subject,
            recipient_name=row.recipient_name,
            recipient_phone=row.recipient_phone,
            recipient_instagram_id=row.recipient_instagram_id,
            recipient_email=row.recipient_email,
            retry_count=row.retry_count or 0,
            updated_at=row.updated_at,
            metadata=dict(row.metadata_json or {}),
        )

    def to_outbound(self) -> OutboundMessage:
        return OutboundMessage(
            id=self.id,
            owner_id=self.owner_id,
            platform=self.platform,
            content=self.content,
            subject=self.subject,
            recipient_name=self.recipient_name,
            recipient_phone=self.recipient_phone,
            recipient_instagram_id=self.recipient_instagram_id,
            recipient_email=self.recipient_email,
            metadata=self.metadata,
        )

    @property
    def recipient(self) -> Optional[str]:
        if self.platform == PlatformEnum.WHATSAPP:
            return self.recipient_phone
        if self.platform == PlatformEnum.INSTAGRAM:
            return self.recipient_instagram_id
        return self.recipient_email


class QueueProcessor:
    """Drains eligible scheduled messages under a wall-clock deadline.

    Each iteration selects up to ``batch_size`` eligible messages ordered by
    (priority, scheduled_for) and works through them in chunks of
    ``settings.queue_concurrency``. A chunk is claimed with a conditional
    update and only the rows that update returned are dispatched. The
    deadline is checked before every chunk. Messages attempted once during
    a run are not selected again by the same run.

    Provider failures are recorded and retried on a later run. Database
    errors propagate and end the run.

    Args:
        session_factory: Factory for the processor's sessions.
        registry: Sender registry keyed by platform.
        integrations: Credential loader handed to the senders.
        settings: Queue tuning (deadline, concurrency, retry budget, timeout).
        notifier: Owner notification sink.
        http_client: Optional shared client for the senders.
        clock: Returns the current UTC time.
        monotonic: Monotonic clock for the deadline.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: SenderRegistry,
        integrations: IntegrationLoader,
        settings: Settings,
        notifier: NotificationService,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry
        self._integrations = integrations
        self._settings = settings
        self._notifier = notifier
        self._http_client = http_client
        self._clock = clock
        self._monotonic = monotonic

    async def run(
        self,
        batch_size: Optional[int] = None,
        owner_id: Optional[UUID] = None,
    ) -> ProcessQueueResult:
        """Process eligible messages until the queue drains or time runs out.

        Args:
            batch_size: Rows selected per iteration (default from settings).
            owner_id: Restrict the run to one owner's messages.

        Returns:
            ProcessQueueResult with processed/failed totals, the eligible
            count left afterwards and the number of iterations.
        """
        batch_size = batch_size or self._settings.queue_batch_size
        concurrency = max(1, self._settings.queue_concurrency)
        max_retries = self._settings.max_retries
        deadline = self._monotonic() + self._settings.queue_deadline_seconds

        result = ProcessQueueResult()
        attempted: set[UUID] = set()
        sent_by_owner: dict[UUID, int] = defaultdict(int)
        timed_out = False

        while not timed_out:
            async with self._session_factory() as session:
                rows = await ScheduledMessageRepository(session).fetch_eligible(
                    self._clock(),
                    batch_size,
                    max_retries=max_retries,
                    owner_id=owner_id,
                    exclude_ids=attempted,
                )
                batch = [QueuedMessage.from_orm_row(row) for row in rows]

            if not batch:
                break
            result.loops += 1
            logger.info(
                "queue_batch_selected: loop=%s, size=%s, owner_id=%s",
                result.loops,
                len(batch),
                owner_id,
            )

            for start in range(0, len(batch), concurrency):
                if self._monotonic() >= deadline:
                    timed_out = True
                    logger.warning(
                        "queue_deadline_reached: loop=%s, processed=%s, failed=%s",
                        result.loops,
                        result.processed,
                        result.failed,
                    )
                    break
                chunk = batch[start:start + concurrency]
                attempted.update(message.id for message in chunk)
                await self._process_chunk(chunk, result, sent_by_owner)

            if len(batch) < batch_size:
                break

        async with self._session_factory() as session:
            result.remaining = await ScheduledMessageRepository(session).count_eligible(
                self._clock(), max_retries=max_retries, owner_id=owner_id
            )

        await self._notify_summary(sent_by_owner)
        logger.info(
            "queue_run_complete: processed=%s, failed=%s, remaining=%s, loops=%s",
            result.processed,
            result.failed,
            result.remaining,
            result.loops,
        )
        return result

    async def _process_chunk(
        self,
        chunk: list[QueuedMessage],
        result: ProcessQueueResult,
        sent_by_owner: dict[UUID, int],
    ) -> None:
        async with self._session_factory() as session:
            _, claimed = await ScheduledMessageRepository(session).claim(
                [message.id for message in chunk],
                self._clock(),
                max_retries=self._settings.max_retries,
            )
            await session.commit()

        to_send = [message for message in chunk if message.id in claimed]
        if len(to_send) < len(chunk):
            logger.info(
                "queue_claim_skipped: requested=%s, claimed=%s",
                len(chunk),
                len(to_send),
            )
        if not to_send:
            return

        outcomes = await asyncio.gather(*(self._dispatch(message) for message in to_send))

        for message, outcome in zip(to_send, outcomes):
            if outcome.success:
                await self._record_success(message, outcome)
                result.processed += 1
                sent_by_owner[message.owner_id] += 1
            else:
                await self._record_failure(message, outcome)
                result.failed += 1

    async def _dispatch(self, message: QueuedMessage) -> SendResult:
        try:
            sender = self._registry.get_sender(
                message.platform.value,
                self._integrations,
                http_client=self._http_client,
                timeout=self._settings.provider_timeout_seconds,
            )
        except ValueError as e:
            return SendResult.failed(str(e))
        bot = BotRef(id=message.bot_id, owner_id=message.owner_id, platform=message.platform)
        return await sender.send(message.to_outbound(), bot)

    async def _write_audit(
        self,
        message: QueuedMessage,
        outcome: SendResult,
        retry_count: int,
    ) -> None:
        async with self._session_factory() as session:
            await AutomationLogRepository(session).create(
                owner_id=message.owner_id,
                automation_id=message.automation_id,
                client_id=message.client_id,
                scheduled_message_id=message.id,
                log_type=(
                    AutomationLogTypeEnum.SENT if outcome.success else AutomationLogTypeEnum.FAILED
                ),
                recipient=message.recipient,
                content=message.content,
                success=outcome.success,
                error_details=outcome.error,
                provider_message_id=outcome.provider_message_id,
                metadata_json={
                    "platform": message.platform.value,
                    "automation_type": message.automation_type,
                    "retry_count": retry_count,
                },
            )
            await session.commit()

    async def _record_success(self, message: QueuedMessage, outcome: SendResult) -> None:
        now = self._clock()
        await self._write_audit(message, outcome, message.retry_count)

        async with self._session_factory() as session:
            await ScheduledMessageRepository(session).mark_sent(
                message.id, outcome.provider_message_id, now
            )
            await session.commit()

        async with self._session_factory() as session:
            if message.recipient:
                await ConversationResolver(session).record_outbound(
                    owner_id=message.owner_id,
                    bot_id=message.bot_id,
                    platform=message.platform,
                    counterparty_id=message.recipient,
                    content=message.content,
                    now=now,
                    recipient_name=message.recipient_name,
                    metadata={
                        "platform_message_id": outcome.provider_message_id,
                        "scheduled_message_id": str(message.id),
                        "automation_type": message.automation_type,
                    },
                )
            session.add(
                UsageLogORM(
                    owner_id=message.owner_id,
                    bot_id=message.bot_id,
                    platform=message.platform.value,
                    operation="automation_message",
                    quantity=1,
                    metadata_json={
                        "scheduled_message_id": str(message.id),
                        "automation_type": message.automation_type,
                    },
                )
            )
            await session.commit()

        logger.info(
            "queue_message_sent: message_id=%s, platform=%s, provider_message_id=%s",
            message.id,
            message.platform.value,
            outcome.provider_message_id,
        )

    async def _record_failure(self, message: QueuedMessage, outcome: SendResult) -> None:
        now = self._clock()
        error = outcome.error or "Unknown error"
        retry_count = next_retry_count(message.retry_count, message.updated_at, now)
        await self._write_audit(message, outcome, retry_count)

        async with self._session_factory() as session:
            await ScheduledMessageRepository(session).mark_failed(
                message.id, retry_count, error, now
            )
            await session.commit()

        logger.warning(
            "queue_message_failed: message_id=%s, platform=%s, retry_count=%s, error=%s",
            message.id,
            message.platform.value,
            retry_count,
            error,
        )

        if retry_count > message.retry_count:
            recipient = message.recipient_name or message.recipient or "destinatario desconocido"
            await self._notifier.notify(
                message.owner_id,
                title="Error al enviar mensaje automático",
                message=f"No se pudo enviar el mensaje a {recipient}: {error}",
                kind=NotificationKindEnum.ERROR,
                link=AUTOMATIONS_LINK,
                metadata={
                    "scheduled_message_id": str(message.id),
                    "platform": message.platform.value,
                    "retry_count": retry_count,
                },
            )

    async def _notify_summary(self, sent_by_owner: dict[UUID, int]) -> None:
        for owner, sent in sent_by_owner.items():
            if sent <= 0:
                continue
            await self._notifier.notify(
                owner,
                title="Mensajes automáticos enviados",
                message=f"Se enviaron {sent} mensajes automáticos.",
                kind=NotificationKindEnum.SUCCESS,
                link=AUTOMATIONS_LINK,
                metadata={"sent": sent},
            )
