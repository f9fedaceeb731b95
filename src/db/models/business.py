"""Business-owned ORM models read by the trigger generators.

These tables are maintained by the dashboard; this service only reads them
(plus ``client.last_interaction_at``, which inbound ingestion refreshes).
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, TimestampMixin, UUIDMixin, pg_enum


class PlatformEnum(str, enum.Enum):
    """Messaging channels a bot can be attached to.

    Maps to the ``platform_type`` PostgreSQL enum type.
    """

    WHATSAPP = "whatsapp"
    INSTAGRAM = "instagram"
    EMAIL = "email"


class TriggerTypeEnum(str, enum.Enum):
    """Automation trigger categories.

    Maps to the ``automation_trigger`` PostgreSQL enum type.
    """

    BIRTHDAY = "birthday"
    INACTIVE_CLIENT = "inactive_client"
    NEW_PROMOTION = "new_promotion"
    WELCOME = "welcome"
    NEW_ORDER = "new_order"


class MessageTypeEnum(str, enum.Enum):
    """Outbound content type of an automation.

    Maps to the ``automation_message_type`` PostgreSQL enum type.
    """

    TEXT = "text"
    TEMPLATE = "template"


class BusinessORM(Base, UUIDMixin, TimestampMixin):
    """Business profile of an owner.

    Maps to the ``business`` table.
    """

    __tablename__ = "business"
    __table_args__ = (UniqueConstraint("owner_id", name="uq_business_owner"),)

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    menu_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    welcome_delay_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("5")
    )


class ClientORM(Base, UUIDMixin, TimestampMixin):
    """Customer of a business.

    Maps to the ``client`` table.
    """

    __tablename__ = "client"
    __table_args__ = (
        Index("idx_client_owner", "owner_id"),
        Index("idx_client_owner_phone", "owner_id", "phone"),
    )

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instagram_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instagram_username: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    birthday: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_interaction_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class BotORM(Base, UUIDMixin, TimestampMixin):
    """A bot attached to one messaging channel.

    The bot id doubles as the webhook verify token for its channel.
    Maps to the ``bot`` table.
    """

    __tablename__ = "bot"
    __table_args__ = (Index("idx_bot_owner_platform", "owner_id", "platform"),)

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[str] = mapped_column(pg_enum(PlatformEnum, "platform_type"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))


class AutomationORM(Base, UUIDMixin, TimestampMixin):
    """Owner-configured automation bound to a bot.

    ``trigger_config`` keys by trigger: ``days_before`` (birthday),
    ``inactive_days`` (inactive_client), ``send_immediately`` and
    ``delay_hours`` (new_promotion).
    Maps to the ``automation`` table.
    """

    __tablename__ = "automation"
    __table_args__ = (Index("idx_automation_trigger", "trigger_type", "is_active"),)

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    bot_id: Mapped[UUID] = mapped_column(ForeignKey("bot.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    trigger_type: Mapped[str] = mapped_column(
        pg_enum(TriggerTypeEnum, "automation_trigger"), nullable=False
    )
    trigger_config: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb")
    )
    message_template: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    message_type: Mapped[str] = mapped_column(
        pg_enum(MessageTypeEnum, "automation_message_type"),
        nullable=False,
        server_default=text("'text'"),
    )
    meta_template_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_template_language: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    template_variables: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb")
    )
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))


class PromotionORM(Base, UUIDMixin, TimestampMixin):
    """Promotion announced to clients through ``new_promotion`` automations.

    Maps to the ``promotion`` table.
    """

    __tablename__ = "promotion"

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))


class OrderORM(Base, UUIDMixin, TimestampMixin):
    """Customer order; new rows trigger order confirmation automations.

    Maps to the ``customer_order`` table.
    """

    __tablename__ = "customer_order"

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    client_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("client.id", ondelete="SET NULL"), nullable=True
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, server_default=text("0")
    )
    delivery_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'pending'"))
