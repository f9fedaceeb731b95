"""Initial schema: business data, dispatch queue, inbound conversations.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(name=name, create_type=False)


def _id() -> sa.Column:
    return sa.Column(
        "id", sa.Uuid(), primary_key=True, server_default=sa.text("gen_random_uuid()")
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def _metadata() -> sa.Column:
    return sa.Column(
        "metadata",
        postgresql.JSONB(),
        nullable=False,
        server_default=sa.text("'{}'::jsonb"),
    )


def upgrade() -> None:
    # =========================================================================
    # EXTENSIONS
    # =========================================================================
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # =========================================================================
    # ENUM TYPES
    # =========================================================================
    op.execute("CREATE TYPE platform_type AS ENUM ('whatsapp', 'instagram', 'email')")
    op.execute(
        "CREATE TYPE automation_trigger AS ENUM ("
        "'birthday', 'inactive_client', 'new_promotion', 'welcome', 'new_order')"
    )
    op.execute("CREATE TYPE automation_message_type AS ENUM ('text', 'template')")
    op.execute(
        "CREATE TYPE scheduled_message_status AS ENUM ("
        "'pending', 'processing', 'sent', 'failed')"
    )
    op.execute(
        "CREATE TYPE automation_execution_status AS ENUM ('processing', 'completed', 'failed')"
    )
    op.execute("CREATE TYPE automation_log_type AS ENUM ('queued', 'sent', 'failed')")
    op.execute("CREATE TYPE conversation_status AS ENUM ('active', 'paused')")
    op.execute("CREATE TYPE message_sender_type AS ENUM ('client', 'bot')")
    op.execute("CREATE TYPE notification_kind AS ENUM ('info', 'success', 'warning', 'error')")

    # =========================================================================
    # BUSINESS DATA (maintained by the dashboard)
    # =========================================================================
    op.create_table(
        "business",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("menu_link", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column(
            "welcome_delay_minutes", sa.Integer(), nullable=False, server_default=sa.text("5")
        ),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("owner_id", name="uq_business_owner"),
    )

    op.create_table(
        "client",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("instagram_id", sa.Text(), nullable=True),
        sa.Column("instagram_username", sa.Text(), nullable=True),
        sa.Column("birthday", sa.Date(), nullable=True),
        sa.Column("last_interaction_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_client_owner", "client", ["owner_id"])
    op.create_index("idx_client_owner_phone", "client", ["owner_id", "phone"])

    op.create_table(
        "bot",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("platform", _enum("platform_type"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_bot_owner_platform", "bot", ["owner_id", "platform"])

    op.create_table(
        "automation",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column(
            "bot_id", sa.Uuid(), sa.ForeignKey("bot.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("trigger_type", _enum("automation_trigger"), nullable=False),
        sa.Column(
            "trigger_config",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("message_template", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column(
            "message_type",
            _enum("automation_message_type"),
            nullable=False,
            server_default=sa.text("'text'"),
        ),
        sa.Column("meta_template_name", sa.Text(), nullable=True),
        sa.Column("meta_template_language", sa.Text(), nullable=True),
        sa.Column(
            "template_variables",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("subject", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_automation_trigger", "automation", ["trigger_type", "is_active"])

    op.create_table(
        "promotion",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        "customer_order",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column(
            "client_id", sa.Uuid(), sa.ForeignKey("client.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column(
            "total_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("delivery_phone", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        _created_at(),
        _updated_at(),
    )

    # =========================================================================
    # INTEGRATIONS
    # =========================================================================
    op.create_table(
        "integration",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("platform", _enum("platform_type"), nullable=False),
        sa.Column(
            "config", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("display_name", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("owner_id", "platform", name="uq_integration_owner_platform"),
    )
    op.create_index("idx_integration_platform_active", "integration", ["platform", "is_active"])

    # =========================================================================
    # DISPATCH QUEUE
    # =========================================================================
    op.create_table(
        "scheduled_message",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column(
            "automation_id",
            sa.Uuid(),
            sa.ForeignKey("automation.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "client_id", sa.Uuid(), sa.ForeignKey("client.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column(
            "bot_id", sa.Uuid(), sa.ForeignKey("bot.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("platform", _enum("platform_type"), nullable=False),
        sa.Column("automation_type", sa.Text(), nullable=True),
        sa.Column("recipient_name", sa.Text(), nullable=True),
        sa.Column("recipient_phone", sa.Text(), nullable=True),
        sa.Column("recipient_instagram_id", sa.Text(), nullable=True),
        sa.Column("recipient_email", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=True),
        _metadata(),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column(
            "status",
            _enum("scheduled_message_status"),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("provider_message_id", sa.Text(), nullable=True),
        sa.Column("claim_token", sa.Uuid(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("retry_count >= 0", name="ck_scheduled_message_retry_count"),
    )
    op.create_index(
        "idx_scheduled_message_due",
        "scheduled_message",
        ["priority", "scheduled_for"],
        postgresql_where=sa.text("status IN ('pending', 'failed') AND retry_count < 3"),
    )
    op.create_index("idx_scheduled_message_owner", "scheduled_message", ["owner_id", "status"])

    op.create_table(
        "automation_execution",
        _id(),
        sa.Column("automation_type", sa.Text(), nullable=False),
        sa.Column("execution_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            _enum("automation_execution_status"),
            nullable=False,
            server_default=sa.text("'processing'"),
        ),
        sa.Column("total_eligible", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("messages_queued", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "skipped_no_contact", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index(
        "uq_automation_execution_completed",
        "automation_execution",
        ["automation_type", "execution_date"],
        unique=True,
        postgresql_where=sa.text("status = 'completed'"),
    )
    op.create_index("idx_automation_execution_date", "automation_execution", ["execution_date"])

    op.create_table(
        "automation_log",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column(
            "automation_id",
            sa.Uuid(),
            sa.ForeignKey("automation.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "client_id", sa.Uuid(), sa.ForeignKey("client.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column(
            "scheduled_message_id",
            sa.Uuid(),
            sa.ForeignKey("scheduled_message.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("log_type", _enum("automation_log_type"), nullable=False),
        sa.Column("recipient", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_details", sa.Text(), nullable=True),
        sa.Column("provider_message_id", sa.Text(), nullable=True),
        _metadata(),
        _created_at(),
    )
    op.create_index("idx_automation_log_message", "automation_log", ["scheduled_message_id"])
    op.create_index("idx_automation_log_owner", "automation_log", ["owner_id", "created_at"])

    # =========================================================================
    # CONVERSATIONS
    # =========================================================================
    op.create_table(
        "conversation",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column(
            "bot_id", sa.Uuid(), sa.ForeignKey("bot.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "client_id", sa.Uuid(), sa.ForeignKey("client.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("platform", _enum("platform_type"), nullable=False),
        sa.Column("counterparty_id", sa.Text(), nullable=False),
        sa.Column("client_name", sa.Text(), nullable=True),
        sa.Column(
            "status",
            _enum("conversation_status"),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column("paused_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index(
        "idx_conversation_counterparty",
        "conversation",
        ["bot_id", "platform", "counterparty_id"],
    )
    op.create_index("idx_conversation_owner", "conversation", ["owner_id", "last_message_at"])

    op.create_table(
        "message",
        _id(),
        sa.Column(
            "conversation_id",
            sa.Uuid(),
            sa.ForeignKey("conversation.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_type", _enum("message_sender_type"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _metadata(),
        _created_at(),
    )
    op.create_index(
        "idx_message_conversation_created", "message", ["conversation_id", "created_at"]
    )
    op.execute(
        "CREATE INDEX idx_message_platform_message_id "
        "ON message ((metadata ->> 'platform_message_id'))"
    )

    # =========================================================================
    # TRACKING
    # =========================================================================
    op.create_table(
        "usage_log",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column(
            "bot_id", sa.Uuid(), sa.ForeignKey("bot.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("platform", sa.Text(), nullable=False),
        sa.Column(
            "operation",
            sa.Text(),
            nullable=False,
            server_default=sa.text("'automation_message'"),
        ),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _metadata(),
        _created_at(),
    )
    op.create_index("idx_usage_owner_created", "usage_log", ["owner_id", "created_at"])

    op.create_table(
        "notification",
        _id(),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "kind", _enum("notification_kind"), nullable=False, server_default=sa.text("'info'")
        ),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _metadata(),
        _created_at(),
    )
    op.create_index("idx_notification_owner_read", "notification", ["owner_id", "is_read"])


def downgrade() -> None:
    for table in (
        "notification",
        "usage_log",
        "message",
        "conversation",
        "automation_log",
        "automation_execution",
        "scheduled_message",
        "integration",
        "customer_order",
        "promotion",
        "automation",
        "bot",
        "client",
        "business",
    ):
        op.drop_table(table)

    for enum_name in (
        "notification_kind",
        "message_sender_type",
        "conversation_status",
        "automation_log_type",
        "automation_execution_status",
        "scheduled_message_status",
        "automation_message_type",
        "automation_trigger",
        "platform_type",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
