"""Unit tests for src/automations/queue_processor.py."""

import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Iterable, Optional
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from integrations.models import SendResult
from src.automations.queue_processor import (
    QueuedMessage,
    QueueProcessor,
    next_retry_count,
)
from src.db.models.automation import AutomationLogTypeEnum
from src.db.models.business import PlatformEnum
from src.db.models.scheduled_message import (
    DISPATCHABLE_STATUSES,
    ScheduledMessageStatusEnum,
)
from src.db.models.tracking import NotificationKindEnum, UsageLogORM

OWNER_ID = UUID("12345678-1234-5678-1234-567812345678")
OTHER_OWNER_ID = UUID("11111111-2222-3333-4444-555555555555")
BOT_ID = UUID("87654321-4321-8765-4321-876543218765")
NOW = datetime(2024, 11, 15, 12, 0, tzinfo=timezone.utc)


def _make_row(**overrides: Any) -> SimpleNamespace:
    """Build a scheduled message row with sensible defaults."""
    row = {
        "id": uuid4(),
        "owner_id": OWNER_ID,
        "bot_id": BOT_ID,
        "platform": PlatformEnum.WHATSAPP,
        "automation_id": uuid4(),
        "client_id": uuid4(),
        "automation_type": "birthday",
        "content": "¡Feliz cumpleaños Ana!",
        "subject": None,
        "recipient_name": "Ana",
        "recipient_phone": "5492611234567",
        "recipient_instagram_id": None,
        "recipient_email": None,
        "retry_count": 0,
        "updated_at": None,
        "metadata_json": {},
        "status": ScheduledMessageStatusEnum.PENDING,
        "priority": 3,
        "scheduled_for": NOW - timedelta(minutes=5),
        "provider_message_id": None,
        "last_error": None,
        "sent_at": None,
    }
    row.update(overrides)
    return SimpleNamespace(**row)


class _FakeScheduledMessages:
    """In-memory stand-in for ScheduledMessageRepository.

    Applies the same eligibility rule and ordering as the SQL queries.
    Ids in ``stolen`` are refused by ``claim``, as if another processor
    claimed them between selection and claim.
    """

    def __init__(self) -> None:
        self.rows: dict[UUID, SimpleNamespace] = {}
        self.stolen: set[UUID] = set()
        self.fetch_sizes: list[int] = []

    def __call__(self, session: Any) -> "_FakeScheduledMessages":
        return self

    def add(self, *rows: SimpleNamespace) -> None:
        for row in rows:
            self.rows[row.id] = row

    @staticmethod
    def _eligible(
        row: SimpleNamespace, now: datetime, max_retries: int, owner_id: Optional[UUID]
    ) -> bool:
        return (
            row.status in DISPATCHABLE_STATUSES
            and row.retry_count < max_retries
            and row.scheduled_for <= now
            and (owner_id is None or row.owner_id == owner_id)
        )

    async def fetch_eligible(
        self,
        now: datetime,
        limit: int,
        max_retries: int = 3,
        owner_id: Optional[UUID] = None,
        exclude_ids: Optional[Iterable[UUID]] = None,
    ) -> list[SimpleNamespace]:
        excluded = set(exclude_ids or ())
        eligible = [
            row
            for row in self.rows.values()
            if row.id not in excluded and self._eligible(row, now, max_retries, owner_id)
        ]
        eligible.sort(key=lambda row: (row.priority, row.scheduled_for))
        self.fetch_sizes.append(len(eligible[:limit]))
        return eligible[:limit]

    async def claim(
        self, ids: list[UUID], now: datetime, max_retries: int = 3
    ) -> tuple[UUID, set[UUID]]:
        claimed = set()
        for message_id in ids:
            row = self.rows[message_id]
            if message_id in self.stolen:
                row.status = ScheduledMessageStatusEnum.PROCESSING
                continue
            if self._eligible(row, now, max_retries, None):
                row.status = ScheduledMessageStatusEnum.PROCESSING
                row.updated_at = now
                claimed.add(message_id)
        return uuid4(), claimed

    async def mark_sent(
        self, message_id: UUID, provider_message_id: Optional[str], now: datetime
    ) -> None:
        row = self.rows[message_id]
        row.status = ScheduledMessageStatusEnum.SENT
        row.provider_message_id = provider_message_id
        row.sent_at = now
        row.updated_at = now

    async def mark_failed(
        self, message_id: UUID, retry_count: int, error: str, now: datetime
    ) -> None:
        row = self.rows[message_id]
        row.status = ScheduledMessageStatusEnum.FAILED
        row.retry_count = retry_count
        row.last_error = error
        row.updated_at = now

    async def count_eligible(
        self, now: datetime, max_retries: int = 3, owner_id: Optional[UUID] = None
    ) -> int:
        return sum(
            1 for row in self.rows.values() if self._eligible(row, now, max_retries, owner_id)
        )


@pytest.fixture
def queue():
    """Patch the processor's repositories with in-memory fakes.

    Yields:
        Namespace with the fake queue, the audit log repo mock and the
        conversation resolver mock.
    """
    store = _FakeScheduledMessages()
    logs = MagicMock()
    logs.create = AsyncMock()
    resolver = MagicMock()
    resolver.record_outbound = AsyncMock()

    with (
        patch("src.automations.queue_processor.ScheduledMessageRepository", store),
        patch("src.automations.queue_processor.AutomationLogRepository", return_value=logs),
        patch("src.automations.queue_processor.ConversationResolver", return_value=resolver),
    ):
        yield SimpleNamespace(store=store, logs=logs, resolver=resolver)


def _processor(
    session_factory: MagicMock,
    registry: MagicMock,
    settings: Any,
    notifier: AsyncMock,
    monotonic: Any = None,
) -> QueueProcessor:
    return QueueProcessor(
        session_factory=session_factory,
        registry=registry,
        integrations=MagicMock(),
        settings=settings,
        notifier=notifier,
        clock=lambda: NOW,
        monotonic=monotonic or (lambda: 0.0),
    )


@pytest.mark.unit
class TestNextRetryCount:
    """Test the once-per-day retry accounting."""

    def test_first_failure_always_counts(self) -> None:
        assert next_retry_count(0, NOW - timedelta(minutes=1), NOW) == 1

    def test_missing_updated_at_counts(self) -> None:
        assert next_retry_count(1, None, NOW) == 2

    def test_same_day_failure_does_not_count(self) -> None:
        assert next_retry_count(1, NOW - timedelta(hours=3), NOW) == 1

    def test_previous_day_failure_counts(self) -> None:
        assert next_retry_count(2, NOW - timedelta(days=1), NOW) == 3

    def test_failures_across_midnight_count_twice(self) -> None:
        """23:59 then 00:01 the next day are different calendar days."""
        before_midnight = datetime(2024, 11, 15, 23, 59, tzinfo=timezone.utc)
        after_midnight = datetime(2024, 11, 16, 0, 1, tzinfo=timezone.utc)

        first = next_retry_count(0, None, before_midnight)
        second = next_retry_count(first, before_midnight, after_midnight)

        assert (first, second) == (1, 2)

    def test_naive_updated_at_is_treated_as_utc(self) -> None:
        naive = datetime(2024, 11, 15, 1, 0)
        assert next_retry_count(1, naive, NOW) == 1


@pytest.mark.unit
class TestQueuedMessage:
    """Test the pre-claim snapshot of a queue row."""

    def test_recipient_follows_platform(self) -> None:
        whatsapp = QueuedMessage.from_orm_row(_make_row())
        instagram = QueuedMessage.from_orm_row(
            _make_row(platform=PlatformEnum.INSTAGRAM, recipient_instagram_id="178414")
        )
        email = QueuedMessage.from_orm_row(
            _make_row(platform="email", recipient_email="ana@example.com")
        )

        assert whatsapp.recipient == "5492611234567"
        assert instagram.recipient == "178414"
        assert email.recipient == "ana@example.com"

    def test_to_outbound_carries_metadata(self) -> None:
        row = _make_row(metadata_json={"is_meta_template": True, "template_name": "promo"})

        outbound = QueuedMessage.from_orm_row(row).to_outbound()

        assert outbound.id == row.id
        assert outbound.platform == "whatsapp"
        assert outbound.metadata["template_name"] == "promo"

    def test_null_retry_count_reads_as_zero(self) -> None:
        assert QueuedMessage.from_orm_row(_make_row(retry_count=None)).retry_count == 0


@pytest.mark.unit
class TestQueueProcessorDrain:
    """Test batch selection, looping and the run summary."""

    async def test_drains_queue_in_full_batches(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        """250 eligible rows with batch size 100 take three iterations."""
        queue.store.add(*[_make_row() for _ in range(250)])
        sender.send.return_value = SendResult.sent("wamid.OK")

        result = await _processor(
            mock_session_factory, registry, queue_settings, notifier
        ).run(batch_size=100)

        assert result.processed == 250
        assert result.failed == 0
        assert result.remaining == 0
        assert result.loops == 3
        assert queue.store.fetch_sizes == [100, 100, 50]
        assert all(row.status == ScheduledMessageStatusEnum.SENT for row in queue.store.rows.values())

    async def test_empty_queue(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        result = await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        assert result.model_dump() == {"processed": 0, "failed": 0, "remaining": 0, "loops": 0}
        sender.send.assert_not_awaited()
        notifier.notify.assert_not_awaited()

    async def test_dispatches_by_priority_then_schedule(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        """Lower priority value goes first, then the earlier scheduled time."""
        queue_settings.queue_concurrency = 1
        late_urgent = _make_row(priority=1, scheduled_for=NOW - timedelta(minutes=1))
        early_normal = _make_row(priority=4, scheduled_for=NOW - timedelta(hours=2))
        early_urgent = _make_row(priority=1, scheduled_for=NOW - timedelta(hours=1))
        queue.store.add(early_normal, late_urgent, early_urgent)

        order: list[UUID] = []

        async def record(message, bot):  # type: ignore[no-untyped-def]
            order.append(message.id)
            return SendResult.sent("wamid.OK")

        sender.send.side_effect = record

        await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        assert order == [early_urgent.id, late_urgent.id, early_normal.id]

    async def test_future_messages_are_not_sent(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        queue.store.add(_make_row(scheduled_for=NOW + timedelta(minutes=10)))

        result = await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        assert result.processed == 0
        sender.send.assert_not_awaited()

    async def test_owner_filter(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        mine = _make_row()
        theirs = _make_row(owner_id=OTHER_OWNER_ID)
        queue.store.add(mine, theirs)
        sender.send.return_value = SendResult.sent("wamid.OK")

        result = await _processor(
            mock_session_factory, registry, queue_settings, notifier
        ).run(owner_id=OWNER_ID)

        assert result.processed == 1
        assert queue.store.rows[mine.id].status == ScheduledMessageStatusEnum.SENT
        assert queue.store.rows[theirs.id].status == ScheduledMessageStatusEnum.PENDING

    async def test_summary_notification_per_owner(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        queue.store.add(_make_row(), _make_row(), _make_row(owner_id=OTHER_OWNER_ID))
        sender.send.return_value = SendResult.sent("wamid.OK")

        await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        summaries = {
            call.args[0]: call.kwargs["metadata"]["sent"]
            for call in notifier.notify.await_args_list
            if call.kwargs["title"] == "Mensajes automáticos enviados"
        }
        assert summaries == {OWNER_ID: 2, OTHER_OWNER_ID: 1}


@pytest.mark.unit
class TestQueueProcessorDeadline:
    """Test the wall-clock deadline."""

    async def test_stops_before_next_chunk_when_deadline_passed(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        """Only the first chunk of 10 is sent once the clock passes 55 seconds."""
        queue.store.add(*[_make_row() for _ in range(30)])
        sender.send.return_value = SendResult.sent("wamid.OK")
        ticks = itertools.chain([0.0, 1.0], itertools.repeat(60.0))

        result = await _processor(
            mock_session_factory,
            registry,
            queue_settings,
            notifier,
            monotonic=lambda: next(ticks),
        ).run()

        assert result.processed == 10
        assert result.remaining == 20
        assert result.loops == 1
        assert sender.send.await_count == 10


@pytest.mark.unit
class TestQueueProcessorClaim:
    """Test that only claimed rows are dispatched."""

    async def test_rows_claimed_elsewhere_are_skipped(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        rows = [_make_row() for _ in range(3)]
        queue.store.add(*rows)
        queue.store.stolen = {rows[0].id}
        sender.send.return_value = SendResult.sent("wamid.OK")

        result = await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        sent_ids = {call.args[0].id for call in sender.send.await_args_list}
        assert sent_ids == {rows[1].id, rows[2].id}
        assert result.processed == 2
        assert result.failed == 0


@pytest.mark.unit
class TestQueueProcessorSuccess:
    """Test what a successful dispatch records."""

    async def test_records_audit_status_conversation_and_usage(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        row = _make_row()
        queue.store.add(row)
        sender.send.return_value = SendResult.sent("wamid.ABC")

        await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        audit = queue.logs.create.await_args.kwargs
        assert audit["log_type"] == AutomationLogTypeEnum.SENT
        assert audit["success"] is True
        assert audit["provider_message_id"] == "wamid.ABC"
        assert audit["recipient"] == "5492611234567"

        stored = queue.store.rows[row.id]
        assert stored.status == ScheduledMessageStatusEnum.SENT
        assert stored.provider_message_id == "wamid.ABC"
        assert stored.sent_at == NOW

        outbound = queue.resolver.record_outbound.await_args.kwargs
        assert outbound["counterparty_id"] == "5492611234567"
        assert outbound["content"] == row.content
        assert outbound["metadata"]["platform_message_id"] == "wamid.ABC"

        added = [call.args[0] for call in mock_session_factory._mock_session.add.call_args_list]
        usage = [item for item in added if isinstance(item, UsageLogORM)]
        assert len(usage) == 1
        assert usage[0].operation == "automation_message"

    async def test_message_without_recipient_skips_conversation(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        queue.store.add(_make_row(recipient_phone=None))
        sender.send.return_value = SendResult.sent("wamid.ABC")

        await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        queue.resolver.record_outbound.assert_not_awaited()

    async def test_database_error_aborts_run(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        queue.store.add(_make_row())
        sender.send.return_value = SendResult.sent("wamid.ABC")
        queue.logs.create.side_effect = SQLAlchemyError("connection lost")

        with pytest.raises(SQLAlchemyError):
            await _processor(mock_session_factory, registry, queue_settings, notifier).run()


@pytest.mark.unit
class TestQueueProcessorFailure:
    """Test failure recording and retry accounting."""

    async def test_first_failure_counts_and_notifies(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        row = _make_row()
        queue.store.add(row)
        sender.send.return_value = SendResult.failed("WhatsApp API error (400): bad number")

        result = await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        stored = queue.store.rows[row.id]
        assert stored.status == ScheduledMessageStatusEnum.FAILED
        assert stored.retry_count == 1
        assert stored.last_error == "WhatsApp API error (400): bad number"
        assert result.failed == 1
        assert result.remaining == 1

        audit = queue.logs.create.await_args.kwargs
        assert audit["log_type"] == AutomationLogTypeEnum.FAILED
        assert audit["success"] is False
        assert audit["error_details"] == "WhatsApp API error (400): bad number"

        notifier.notify.assert_awaited_once()
        assert notifier.notify.await_args.kwargs["kind"] == NotificationKindEnum.ERROR

    async def test_same_day_failure_keeps_count_without_notifying(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        row = _make_row(
            status=ScheduledMessageStatusEnum.FAILED,
            retry_count=1,
            updated_at=NOW - timedelta(hours=2),
        )
        queue.store.add(row)
        sender.send.return_value = SendResult.failed("timeout")

        await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        assert queue.store.rows[row.id].retry_count == 1
        notifier.notify.assert_not_awaited()

    async def test_next_day_failure_counts(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        row = _make_row(
            status=ScheduledMessageStatusEnum.FAILED,
            retry_count=1,
            updated_at=NOW - timedelta(days=1),
        )
        queue.store.add(row)
        sender.send.return_value = SendResult.failed("timeout")

        await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        assert queue.store.rows[row.id].retry_count == 2
        notifier.notify.assert_awaited_once()

    async def test_exhausted_messages_are_not_selected(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        queue.store.add(_make_row(status=ScheduledMessageStatusEnum.FAILED, retry_count=3))

        result = await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        assert result.loops == 0
        assert result.remaining == 0
        sender.send.assert_not_awaited()

    async def test_each_message_attempted_once_per_run(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        """A failed message stays eligible but is not picked again by the same run."""
        queue.store.add(_make_row(), _make_row())
        sender.send.return_value = SendResult.failed("provider down")

        result = await _processor(
            mock_session_factory, registry, queue_settings, notifier
        ).run(batch_size=1)

        assert sender.send.await_count == 2
        assert result.failed == 2
        assert result.loops == 2
        assert result.remaining == 2

    async def test_unregistered_platform_is_a_failure(
        self, queue, mock_session_factory, registry, sender, queue_settings, notifier
    ) -> None:
        row = _make_row()
        queue.store.add(row)
        registry.get_sender.side_effect = ValueError("No sender registered for platform")

        result = await _processor(mock_session_factory, registry, queue_settings, notifier).run()

        assert result.failed == 1
        assert queue.store.rows[row.id].last_error == "No sender registered for platform"
