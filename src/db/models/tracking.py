"""Usage log and owner notification ORM models."""

import enum
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, UUIDMixin, pg_enum


class NotificationKindEnum(str, enum.Enum):
    """Severity of an owner notification.

    Maps to the ``notification_kind`` PostgreSQL enum type.
    """

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class UsageLogORM(Base, UUIDMixin):
    """One row per successfully dispatched message.

    Maps to the ``usage_log`` table.
    """

    __tablename__ = "usage_log"
    __table_args__ = (Index("idx_usage_owner_created", "owner_id", "created_at"),)

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    bot_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("bot.id", ondelete="SET NULL"), nullable=True
    )
    platform: Mapped[str] = mapped_column(Text, nullable=False)
    operation: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'automation_message'")
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    metadata_json: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class NotificationORM(Base, UUIDMixin):
    """Owner-facing notification shown in the dashboard.

    Maps to the ``notification`` table.
    """

    __tablename__ = "notification"
    __table_args__ = (Index("idx_notification_owner_read", "owner_id", "is_read"),)

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(
        pg_enum(NotificationKindEnum, "notification_kind"),
        nullable=False,
        server_default=text("'info'"),
    )
    link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    metadata_json: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
