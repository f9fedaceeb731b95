"""Trigger generators: turn business data into scheduled messages.

Daily scans (birthday, inactive client, promotion scan) are guarded by an
``automation_execution`` row per (type, date). Event handlers (promotion
broadcast, welcome, order confirmation) enqueue for one record.
"""

import logging
import random
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.automations.notifications import NotificationService
from src.automations.templating import (
    build_template_metadata,
    build_variables,
    render_template,
)
from src.db.models.automation import AutomationLogTypeEnum
from src.db.models.business import (
    AutomationORM,
    BotORM,
    BusinessORM,
    ClientORM,
    PlatformEnum,
    TriggerTypeEnum,
)
from src.db.models.scheduled_message import ScheduledMessageORM, ScheduledMessageStatusEnum
from src.db.models.tracking import NotificationKindEnum
from src.db.repositories.automation_repo import (
    AutomationExecutionRepository,
    AutomationLogRepository,
    AutomationRepository,
)
from src.db.repositories.business_repo import (
    BusinessRepository,
    ClientRepository,
    OrderRepository,
    PromotionRepository,
)
from src.db.repositories.scheduled_message_repo import ScheduledMessageRepository

logger = logging.getLogger(__name__)

# Client attribute holding the contact handle for each bot platform.
CONTACT_FIELD: dict[PlatformEnum, str] = {
    PlatformEnum.WHATSAPP: "phone",
    PlatformEnum.INSTAGRAM: "instagram_id",
    PlatformEnum.EMAIL: "email",
}
RECIPIENT_FIELD: dict[PlatformEnum, str] = {
    PlatformEnum.WHATSAPP: "recipient_phone",
    PlatformEnum.INSTAGRAM: "recipient_instagram_id",
    PlatformEnum.EMAIL: "recipient_email",
}

PROMOTION_IMAGE_NOTE = "\n\n📸 Ve la imagen de la promoción en nuestros canales."
DEFAULT_WELCOME_DELAY_MINUTES = 5
DEFAULT_INACTIVE_DAYS = 30
INSERT_BATCH_SIZE = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeneratorSummary(BaseModel):
    """Result of one generator run."""

    automation_type: str
    already_processed: bool = False
    automations: int = 0
    total_eligible: int = 0
    messages_queued: int = 0
    skipped_no_contact: int = 0
    already_queued: int = 0
    promotions_found: int = 0


def contact_for(client: Any, platform: PlatformEnum) -> Optional[str]:
    """The client's contact handle for a platform, or None when missing."""
    value = getattr(client, CONTACT_FIELD[PlatformEnum(platform)], None)
    return value or None


def build_message_row(
    automation: AutomationORM,
    bot: BotORM,
    client: ClientORM,
    contact: str,
    content: str,
    scheduled_for: datetime,
    automation_type: str,
    priority: int,
    metadata: dict[str, Any],
) -> dict[str, Any]:
    """Column values for one ScheduledMessage row."""
    platform = PlatformEnum(bot.platform)
    return {
        "owner_id": automation.owner_id,
        "automation_id": automation.id,
        "client_id": client.id,
        "bot_id": bot.id,
        "platform": platform,
        "automation_type": automation_type,
        "recipient_name": client.name,
        RECIPIENT_FIELD[platform]: contact,
        "content": content,
        "subject": automation.subject if platform == PlatformEnum.EMAIL else None,
        "metadata_json": metadata,
        "scheduled_for": scheduled_for,
        "priority": automation.priority or priority,
        "status": ScheduledMessageStatusEnum.PENDING,
    }


def queued_log_row(
    message: ScheduledMessageORM,
    metadata: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Audit row recording that ``message`` entered the queue."""
    platform = PlatformEnum(message.platform)
    return {
        "owner_id": message.owner_id,
        "automation_id": message.automation_id,
        "client_id": message.client_id,
        "scheduled_message_id": message.id,
        "log_type": AutomationLogTypeEnum.QUEUED,
        "recipient": getattr(message, RECIPIENT_FIELD[platform]),
        "content": message.content,
        "success": True,
        "metadata_json": metadata or {},
    }


async def insert_in_batches(
    session: AsyncSession,
    rows: list[dict[str, Any]],
    batch_size: int = INSERT_BATCH_SIZE,
    log_metadata: Optional[dict[str, Any]] = None,
    write_logs: bool = True,
) -> int:
    """Insert scheduled messages batch by batch, committing each batch.

    A batch's ``queued`` audit rows are written only after its messages were
    inserted and committed.

    Returns:
        Number of messages inserted.
    """
    messages = ScheduledMessageRepository(session)
    logs = AutomationLogRepository(session)
    queued = 0
    for start in range(0, len(rows), batch_size):
        created = await messages.bulk_create(rows[start:start + batch_size])
        await session.commit()
        if write_logs:
            await logs.bulk_create([queued_log_row(m, log_metadata) for m in created])
            await session.commit()
        queued += len(created)
    return queued


async def drop_already_queued(
    session: AsyncSession,
    automation: AutomationORM,
    clients: list[ClientORM],
    summary: GeneratorSummary,
    since: Optional[datetime] = None,
    metadata_match: Optional[dict[str, str]] = None,
) -> list[ClientORM]:
    """Remove clients an earlier attempt of the same run already queued.

    Batches are committed one at a time, so a retried run finds the rows
    of the batches that made it and must not insert them again.
    """
    queued = await ScheduledMessageRepository(session).queued_client_ids(
        automation.id, since=since, metadata_match=metadata_match
    )
    if not queued:
        return clients
    remaining = [client for client in clients if client.id not in queued]
    summary.already_queued += len(clients) - len(remaining)
    logger.info(
        "generator_skipped_already_queued: automation_id=%s, count=%s",
        automation.id,
        len(clients) - len(remaining),
    )
    return remaining


class _BusinessCache:
    def __init__(self, session: AsyncSession) -> None:
        self._repo = BusinessRepository(session)
        self._cache: dict[UUID, Optional[BusinessORM]] = {}

    async def get(self, owner_id: UUID) -> Optional[BusinessORM]:
        if owner_id not in self._cache:
            self._cache[owner_id] = await self._repo.get_by_owner(owner_id)
        return self._cache[owner_id]


class DailyScanGenerator(ABC):
    """Base for the once-a-day client scans.

    A run is skipped when a completed execution already exists for
    (``automation_type``, today). Otherwise a ``processing`` execution is
    committed, messages are enqueued for every active automation of
    ``trigger_type`` and the execution is completed with its counts. A failed
    run may be retried the same day: clients that already got a message from
    the automation today are skipped.

    Args:
        session_factory: Factory for the run's session.
        batch_size: Rows per insert.
        clock: Returns the current UTC time.
        rng: Random source for the send-time jitter.
    """

    automation_type: str
    trigger_type: TriggerTypeEnum
    priority: int

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        batch_size: int = INSERT_BATCH_SIZE,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._session_factory = session_factory
        self._batch_size = batch_size
        self._clock = clock
        self._rng = rng or random.Random()

    @abstractmethod
    async def eligible_clients(
        self,
        session: AsyncSession,
        automation: AutomationORM,
        today: date,
    ) -> list[ClientORM]:
        """Clients the automation should message today."""

    @abstractmethod
    def schedule_time(self, now: datetime) -> datetime:
        """Send time for one message (jittered)."""

    async def run(self) -> GeneratorSummary:
        now = self._clock()
        today = now.date()
        summary = GeneratorSummary(automation_type=self.automation_type)

        async with self._session_factory() as session:
            executions = AutomationExecutionRepository(session)
            if await executions.get_completed(self.automation_type, today) is not None:
                logger.info(
                    "generator_already_processed: type=%s, date=%s", self.automation_type, today
                )
                summary.already_processed = True
                return summary

            execution = await executions.start(self.automation_type, today)
            await session.commit()

            try:
                await self._generate(session, now, summary)
                await executions.complete(
                    execution,
                    self._clock(),
                    total_eligible=summary.total_eligible,
                    messages_queued=summary.messages_queued,
                    skipped_no_contact=summary.skipped_no_contact,
                )
                await session.commit()
            except Exception:
                logger.exception(
                    "generator_failed: type=%s, execution_id=%s", self.automation_type, execution.id
                )
                await session.rollback()
                await executions.fail(execution, self._clock())
                await session.commit()
                raise

        logger.info(
            "generator_complete: type=%s, eligible=%s, queued=%s, skipped_no_contact=%s",
            self.automation_type,
            summary.total_eligible,
            summary.messages_queued,
            summary.skipped_no_contact,
        )
        return summary

    async def _generate(
        self, session: AsyncSession, now: datetime, summary: GeneratorSummary
    ) -> None:
        pairs = await AutomationRepository(session).list_active(self.trigger_type)
        businesses = _BusinessCache(session)
        summary.automations = len(pairs)
        day_start = datetime.combine(now.date(), datetime.min.time(), tzinfo=timezone.utc)

        for automation, bot in pairs:
            clients = await self.eligible_clients(session, automation, now.date())
            business = await businesses.get(automation.owner_id)
            summary.total_eligible += len(clients)
            clients = await drop_already_queued(
                session, automation, clients, summary, since=day_start
            )

            rows = []
            for client in clients:
                contact = contact_for(client, bot.platform)
                if contact is None:
                    summary.skipped_no_contact += 1
                    continue
                variables = build_variables(client=client, business=business, now=now)
                rows.append(
                    build_message_row(
                        automation,
                        bot,
                        client,
                        contact,
                        render_template(automation.message_template, variables),
                        self.schedule_time(now),
                        self.automation_type,
                        self.priority,
                        build_template_metadata(automation, variables),
                    )
                )

            summary.messages_queued += await insert_in_batches(
                session, rows, self._batch_size, write_logs=False
            )


class BirthdayGenerator(DailyScanGenerator):
    """Greets clients whose birthday is ``trigger_config.days_before`` days away."""

    automation_type = "birthday"
    trigger_type = TriggerTypeEnum.BIRTHDAY
    priority = 3

    async def eligible_clients(
        self, session: AsyncSession, automation: AutomationORM, today: date
    ) -> list[ClientORM]:
        days_before = int((automation.trigger_config or {}).get("days_before") or 0)
        target = today + timedelta(days=days_before)
        return await ClientRepository(session).find_birthdays(
            automation.owner_id, target.month, target.day
        )

    def schedule_time(self, now: datetime) -> datetime:
        return now + timedelta(minutes=self._rng.randrange(30))


class InactiveClientGenerator(DailyScanGenerator):
    """Re-engages clients with no interaction for ``inactive_days`` (default 30)."""

    automation_type = "inactive_client"
    trigger_type = TriggerTypeEnum.INACTIVE_CLIENT
    priority = 4

    async def eligible_clients(
        self, session: AsyncSession, automation: AutomationORM, today: date
    ) -> list[ClientORM]:
        days = int((automation.trigger_config or {}).get("inactive_days") or DEFAULT_INACTIVE_DAYS)
        cutoff = datetime.combine(today, datetime.min.time(), tzinfo=timezone.utc) - timedelta(
            days=days
        )
        return await ClientRepository(session).find_inactive(automation.owner_id, cutoff)

    def schedule_time(self, now: datetime) -> datetime:
        return now + timedelta(hours=self._rng.randrange(8) + 1)


class PromotionScan:
    """Daily check of promotions created in the last 24 hours.

    Broadcasting itself is event-driven (``PromotionBroadcaster``); the scan
    only reports what it saw and records the day's execution.
    """

    automation_type = "promotion_broadcast"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def run(self) -> GeneratorSummary:
        now = self._clock()
        today = now.date()
        summary = GeneratorSummary(automation_type=self.automation_type)

        async with self._session_factory() as session:
            executions = AutomationExecutionRepository(session)
            if await executions.get_completed(self.automation_type, today) is not None:
                summary.already_processed = True
                return summary

            promotions = await PromotionRepository(session).list_recent(now - timedelta(hours=24))
            with_automations = []
            for promotion in promotions:
                pairs = await AutomationRepository(session).list_active(
                    TriggerTypeEnum.NEW_PROMOTION, owner_id=promotion.owner_id
                )
                if pairs:
                    with_automations.append(promotion)
            summary.promotions_found = len(with_automations)

            execution = await executions.start(self.automation_type, today)
            await executions.complete(
                execution, now, total_eligible=summary.promotions_found, messages_queued=0
            )
            await session.commit()

        logger.info("promotion_scan_complete: promotions_found=%s", summary.promotions_found)
        return summary


class PromotionBroadcaster:
    """Fans a new promotion out to every reachable client of its owner.

    Recipients of one automation are spaced ``spacing_seconds`` apart, so
    their send times are distinct.

    Args:
        session_factory: Factory for the broadcast's session.
        notifier: Optional sink for the fan-out summary notification.
        spacing_seconds: Gap between consecutive recipients.
        batch_size: Rows per insert.
        clock: Returns the current UTC time.
    """

    automation_type = "new_promotion"
    priority = 3

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[NotificationService] = None,
        spacing_seconds: float = 2.0,
        batch_size: int = INSERT_BATCH_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier
        self._spacing = timedelta(seconds=spacing_seconds)
        self._batch_size = batch_size
        self._clock = clock

    @staticmethod
    def base_time(trigger_config: Optional[dict[str, Any]], now: datetime) -> datetime:
        """First send time: ``delay_hours`` ahead unless sending immediately (2 minutes)."""
        config = trigger_config or {}
        delay_hours = float(config.get("delay_hours") or 0)
        if not config.get("send_immediately") and delay_hours > 0:
            return now + timedelta(hours=delay_hours)
        return now + timedelta(minutes=2)

    async def broadcast(self, promotion_id: UUID) -> GeneratorSummary:
        now = self._clock()
        summary = GeneratorSummary(automation_type=self.automation_type)

        async with self._session_factory() as session:
            promotion = await PromotionRepository(session).get_by_id(promotion_id)
            if promotion is None or not promotion.is_active:
                logger.info("promotion_not_broadcast: promotion_id=%s", promotion_id)
                return summary

            pairs = await AutomationRepository(session).list_active(
                TriggerTypeEnum.NEW_PROMOTION, owner_id=promotion.owner_id
            )
            summary.automations = len(pairs)
            if not pairs:
                return summary

            business = await BusinessRepository(session).get_by_owner(promotion.owner_id)
            clients = await ClientRepository(session).list_by_owner(promotion.owner_id)
            log_metadata = {"promotion_id": str(promotion.id), "broadcast_type": "new_promotion"}

            for automation, bot in pairs:
                base = self.base_time(automation.trigger_config, now)
                pending = await drop_already_queued(
                    session,
                    automation,
                    clients,
                    summary,
                    metadata_match={"promotion_id": str(promotion.id)},
                )
                rows = []
                for client in pending:
                    contact = contact_for(client, bot.platform)
                    if contact is None:
                        summary.skipped_no_contact += 1
                        continue
                    variables = build_variables(
                        client=client, business=business, promotion=promotion, now=now
                    )
                    metadata = build_template_metadata(automation, variables)
                    content = render_template(automation.message_template, variables)
                    if promotion.image_url and not metadata["is_meta_template"]:
                        content += PROMOTION_IMAGE_NOTE
                    metadata.update(
                        {"promotion_id": str(promotion.id), "promotion_name": promotion.name}
                    )
                    rows.append(
                        build_message_row(
                            automation,
                            bot,
                            client,
                            contact,
                            content,
                            base + self._spacing * len(rows),
                            self.automation_type,
                            self.priority,
                            metadata,
                        )
                    )
                summary.total_eligible += len(rows)
                summary.messages_queued += await insert_in_batches(
                    session, rows, self._batch_size, log_metadata=log_metadata
                )

            owner_id = promotion.owner_id
            promotion_name = promotion.name

        logger.info(
            "promotion_broadcast_complete: promotion_id=%s, queued=%s, skipped_no_contact=%s",
            promotion_id,
            summary.messages_queued,
            summary.skipped_no_contact,
        )
        if self._notifier is not None and summary.messages_queued:
            await self._notifier.notify(
                owner_id,
                title="Promoción programada",
                message=(
                    f"La promoción {promotion_name} se enviará a "
                    f"{summary.messages_queued} clientes."
                ),
                kind=NotificationKindEnum.SUCCESS,
                link="/dashboard/promociones",
                metadata={"promotion_id": str(promotion_id), "queued": summary.messages_queued},
            )
        return summary


class WelcomeGenerator:
    """Queues the welcome message for a newly created client."""

    automation_type = "welcome"
    priority = 4

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def enqueue(self, client_id: UUID) -> GeneratorSummary:
        now = self._clock()
        summary = GeneratorSummary(automation_type=self.automation_type)

        async with self._session_factory() as session:
            client = await ClientRepository(session).get_by_id(client_id)
            if client is None:
                return summary
            pairs = await AutomationRepository(session).list_active(
                TriggerTypeEnum.WELCOME, owner_id=client.owner_id
            )
            summary.automations = len(pairs)
            if not pairs:
                return summary

            business = await BusinessRepository(session).get_by_owner(client.owner_id)
            delay = DEFAULT_WELCOME_DELAY_MINUTES
            if business is not None and business.welcome_delay_minutes:
                delay = business.welcome_delay_minutes
            variables = build_variables(client=client, business=business, now=now)

            rows = []
            for automation, bot in pairs:
                if not await drop_already_queued(session, automation, [client], summary):
                    continue
                contact = contact_for(client, bot.platform)
                if contact is None:
                    summary.skipped_no_contact += 1
                    continue
                rows.append(
                    build_message_row(
                        automation,
                        bot,
                        client,
                        contact,
                        render_template(automation.message_template, variables),
                        now + timedelta(minutes=delay),
                        self.automation_type,
                        self.priority,
                        build_template_metadata(automation, variables),
                    )
                )
            summary.total_eligible = len(rows)
            summary.messages_queued = await insert_in_batches(session, rows)

        logger.info(
            "welcome_enqueued: client_id=%s, queued=%s", client_id, summary.messages_queued
        )
        return summary


class OrderConfirmationGenerator:
    """Queues the confirmation message for a new order."""

    automation_type = "order_confirmation"
    priority = 2

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def enqueue(self, order_id: UUID) -> GeneratorSummary:
        now = self._clock()
        summary = GeneratorSummary(automation_type=self.automation_type)

        async with self._session_factory() as session:
            order = await OrderRepository(session).get_by_id(order_id)
            if order is None or order.client_id is None:
                return summary
            client = await ClientRepository(session).get_by_id(order.client_id)
            if client is None:
                return summary
            pairs = await AutomationRepository(session).list_active(
                TriggerTypeEnum.NEW_ORDER, owner_id=order.owner_id
            )
            summary.automations = len(pairs)
            business = await BusinessRepository(session).get_by_owner(order.owner_id)
            variables = build_variables(client=client, business=business, order=order, now=now)

            rows = []
            for automation, bot in pairs:
                order_match = {"order_id": str(order.id)}
                if not await drop_already_queued(
                    session, automation, [client], summary, metadata_match=order_match
                ):
                    continue
                contact = contact_for(client, bot.platform)
                if contact is None and PlatformEnum(bot.platform) == PlatformEnum.WHATSAPP:
                    contact = order.delivery_phone or None
                if contact is None:
                    summary.skipped_no_contact += 1
                    continue
                rows.append(
                    build_message_row(
                        automation,
                        bot,
                        client,
                        contact,
                        render_template(automation.message_template, variables),
                        now + timedelta(minutes=2),
                        self.automation_type,
                        self.priority,
                        {**build_template_metadata(automation, variables), **order_match},
                    )
                )
            summary.total_eligible = len(rows)
            summary.messages_queued = await insert_in_batches(session, rows)

        logger.info(
            "order_confirmation_enqueued: order_id=%s, queued=%s", order_id, summary.messages_queued
        )
        return summary
