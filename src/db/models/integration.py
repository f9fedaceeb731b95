"""ORM model for per-owner platform credentials."""

from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Index, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, TimestampMixin, UUIDMixin, pg_enum
from src.db.models.business import PlatformEnum


class IntegrationORM(Base, UUIDMixin, TimestampMixin):
    """Credential bundle for one (owner, platform) pair.

    ``config`` keys by platform:
        whatsapp: phone_number_id, access_token
        instagram: instagram_business_account_id, access_token
        email: provider (sendgrid | mailgun | ses) plus provider keys

    WARNING: ``config`` stores credentials as plaintext JSONB.
    Maps to the ``integration`` table.
    """

    __tablename__ = "integration"
    __table_args__ = (
        UniqueConstraint("owner_id", "platform", name="uq_integration_owner_platform"),
        Index("idx_integration_platform_active", "platform", "is_active"),
    )

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    platform: Mapped[str] = mapped_column(pg_enum(PlatformEnum, "platform_type"), nullable=False)
    config: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    is_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    display_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
