"""Conversation and message repositories."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.business import PlatformEnum
from src.db.models.conversation import (
    ConversationORM,
    ConversationStatusEnum,
    MessageORM,
    SenderTypeEnum,
)
from src.db.repositories.base import BaseRepository


class ConversationRepository(BaseRepository[ConversationORM]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ConversationORM)

    async def find_for_counterparty(
        self,
        bot_id: UUID,
        platform: PlatformEnum,
        counterparty_ids: list[str],
    ) -> Optional[ConversationORM]:
        """Find the best conversation matching any of the counterparty ids.

        Active conversations win over paused ones; ties go to the most
        recently active thread.

        Args:
            bot_id: Bot that owns the thread.
            platform: Channel of the thread.
            counterparty_ids: Candidate ids (phone variants for phone channels).
        """
        if not counterparty_ids:
            return None
        active_first = case((ConversationORM.status == ConversationStatusEnum.ACTIVE, 0), else_=1)
        stmt = (
            select(ConversationORM)
            .where(
                ConversationORM.bot_id == bot_id,
                ConversationORM.platform == platform,
                ConversationORM.counterparty_id.in_(counterparty_ids),
            )
            .order_by(
                active_first,
                ConversationORM.last_message_at.desc().nulls_last(),
                ConversationORM.created_at.desc(),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class MessageRepository(BaseRepository[MessageORM]):
    """Append-only message access plus the inbound dedup and debounce queries."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, MessageORM)

    async def exists_by_provider_id(self, provider_message_id: str) -> bool:
        """Whether a message with this provider id was already stored."""
        stmt = (
            select(MessageORM.id)
            .where(MessageORM.metadata_json["platform_message_id"].astext == provider_message_id)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def has_newer_client_message(
        self,
        conversation_id: UUID,
        after: datetime,
        exclude_id: UUID,
    ) -> bool:
        """Whether the client wrote again in this conversation after ``after``."""
        stmt = (
            select(MessageORM.id)
            .where(
                MessageORM.conversation_id == conversation_id,
                MessageORM.sender_type == SenderTypeEnum.CLIENT,
                MessageORM.created_at > after,
                MessageORM.id != exclude_id,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None
