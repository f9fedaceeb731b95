"""Scheduled outbound message ORM model (the dispatch queue)."""

import enum
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, TimestampMixin, UUIDMixin, pg_enum
from src.db.models.business import PlatformEnum


class ScheduledMessageStatusEnum(str, enum.Enum):
    """Lifecycle of a queued message.

    Maps to the ``scheduled_message_status`` PostgreSQL enum type.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"


# Statuses a message can be claimed from.
DISPATCHABLE_STATUSES = (
    ScheduledMessageStatusEnum.PENDING,
    ScheduledMessageStatusEnum.FAILED,
)


class ScheduledMessageORM(Base, UUIDMixin, TimestampMixin):
    """Durable queue entry for one outbound message.

    A row is eligible for dispatch while ``status`` is pending or failed,
    ``retry_count`` is below the retry budget and ``scheduled_for`` has passed.
    Maps to the ``scheduled_message`` table.
    """

    __tablename__ = "scheduled_message"
    __table_args__ = (
        Index(
            "idx_scheduled_message_due",
            "priority",
            "scheduled_for",
            postgresql_where=text("status IN ('pending', 'failed') AND retry_count < 3"),
        ),
        Index("idx_scheduled_message_owner", "owner_id", "status"),
    )

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    automation_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("automation.id", ondelete="SET NULL"), nullable=True
    )
    client_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("client.id", ondelete="SET NULL"), nullable=True
    )
    bot_id: Mapped[UUID] = mapped_column(ForeignKey("bot.id", ondelete="CASCADE"), nullable=False)
    platform: Mapped[str] = mapped_column(pg_enum(PlatformEnum, "platform_type"), nullable=False)
    automation_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    recipient_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recipient_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recipient_instagram_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recipient_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb")
    )

    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, default=5, server_default=text("5")
    )
    status: Mapped[str] = mapped_column(
        pg_enum(ScheduledMessageStatusEnum, "scheduled_message_status"),
        nullable=False,
        default=ScheduledMessageStatusEnum.PENDING,
        server_default=text("'pending'"),
    )
    retry_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider_message_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    claim_token: Mapped[Optional[UUID]] = mapped_column(nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
