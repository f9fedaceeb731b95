"""Conversation and Message ORM models."""

import enum
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, TimestampMixin, UUIDMixin, pg_enum
from src.db.models.business import PlatformEnum


class ConversationStatusEnum(str, enum.Enum):
    """Whether automated replies are enabled for a conversation.

    Maps to the ``conversation_status`` PostgreSQL enum type.
    """

    ACTIVE = "active"
    PAUSED = "paused"


class SenderTypeEnum(str, enum.Enum):
    """Author of a message.

    Maps to the ``message_sender_type`` PostgreSQL enum type.
    """

    CLIENT = "client"
    BOT = "bot"


class ConversationORM(Base, UUIDMixin, TimestampMixin):
    """Chat thread between a bot and one counterparty on one platform.

    ``counterparty_id`` is the phone number (WhatsApp), Instagram-scoped user
    id (Instagram) or email address (email). Created lazily on first contact
    and never hard-deleted by this service.
    Maps to the ``conversation`` table.
    """

    __tablename__ = "conversation"
    __table_args__ = (
        Index("idx_conversation_counterparty", "bot_id", "platform", "counterparty_id"),
        Index("idx_conversation_owner", "owner_id", "last_message_at"),
    )

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    bot_id: Mapped[UUID] = mapped_column(ForeignKey("bot.id", ondelete="CASCADE"), nullable=False)
    client_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("client.id", ondelete="SET NULL"), nullable=True
    )
    platform: Mapped[str] = mapped_column(pg_enum(PlatformEnum, "platform_type"), nullable=False)
    counterparty_id: Mapped[str] = mapped_column(Text, nullable=False)
    client_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        pg_enum(ConversationStatusEnum, "conversation_status"),
        nullable=False,
        default=ConversationStatusEnum.ACTIVE,
        server_default=text("'active'"),
    )
    paused_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_message_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    messages: Mapped[List["MessageORM"]] = relationship(
        "MessageORM", back_populates="conversation", cascade="all, delete-orphan"
    )


class MessageORM(Base, UUIDMixin):
    """Individual message within a conversation.

    Messages are append-only -- no updated_at column. The provider message id
    lives in ``metadata['platform_message_id']`` and is the inbound dedup key.
    Maps to the ``message`` table.
    """

    __tablename__ = "message"
    __table_args__ = (
        Index("idx_message_conversation_created", "conversation_id", "created_at"),
        Index(
            "idx_message_platform_message_id",
            text("(metadata ->> 'platform_message_id')"),
        ),
    )

    conversation_id: Mapped[UUID] = mapped_column(
        ForeignKey("conversation.id", ondelete="CASCADE"), nullable=False
    )
    sender_type: Mapped[str] = mapped_column(
        pg_enum(SenderTypeEnum, "message_sender_type"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    conversation: Mapped["ConversationORM"] = relationship(
        "ConversationORM", back_populates="messages"
    )
