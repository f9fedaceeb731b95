"""Automation execution (idempotency guard) and audit log ORM models."""

import enum
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, TimestampMixin, UUIDMixin, pg_enum


class ExecutionStatusEnum(str, enum.Enum):
    """Status of one daily run of a recurring trigger.

    Maps to the ``automation_execution_status`` PostgreSQL enum type.
    """

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AutomationLogTypeEnum(str, enum.Enum):
    """Queue event recorded in the audit log.

    Maps to the ``automation_log_type`` PostgreSQL enum type.
    """

    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"


class AutomationExecutionORM(Base, UUIDMixin, TimestampMixin):
    """One run of a recurring trigger (birthday, inactive client, promotion scan).

    At most one ``completed`` row exists per (automation_type, execution_date);
    the partial unique index enforces it even when two scans race.
    Maps to the ``automation_execution`` table.
    """

    __tablename__ = "automation_execution"
    __table_args__ = (
        Index(
            "uq_automation_execution_completed",
            "automation_type",
            "execution_date",
            unique=True,
            postgresql_where=text("status = 'completed'"),
        ),
        Index("idx_automation_execution_date", "execution_date"),
    )

    automation_type: Mapped[str] = mapped_column(Text, nullable=False)
    execution_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        pg_enum(ExecutionStatusEnum, "automation_execution_status"),
        nullable=False,
        default=ExecutionStatusEnum.PROCESSING,
        server_default=text("'processing'"),
    )
    total_eligible: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    messages_queued: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    skipped_no_contact: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class AutomationLogORM(Base, UUIDMixin):
    """Immutable audit row for a queue event.

    Written (and committed) before the scheduled message's status changes,
    so the dispatch history survives a failed status update.
    Messages are immutable -- no updated_at column.
    Maps to the ``automation_log`` table.
    """

    __tablename__ = "automation_log"
    __table_args__ = (
        Index("idx_automation_log_message", "scheduled_message_id"),
        Index("idx_automation_log_owner", "owner_id", "created_at"),
    )

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    automation_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("automation.id", ondelete="SET NULL"), nullable=True
    )
    client_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("client.id", ondelete="SET NULL"), nullable=True
    )
    scheduled_message_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("scheduled_message.id", ondelete="SET NULL"), nullable=True
    )
    log_type: Mapped[str] = mapped_column(
        pg_enum(AutomationLogTypeEnum, "automation_log_type"), nullable=False
    )
    recipient: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider_message_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
