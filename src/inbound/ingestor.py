"""Inbound message ingestion: dedup, persistence, reply gating and auto-reply."""

import asyncio
import enum
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import httpx
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from integrations.credentials import IntegrationLoader
from integrations.instagram.adapter import fetch_instagram_username
from integrations.instagram.webhook import normalize_text
from integrations.models import BotRef, IncomingMessage, OutboundMessage
from integrations.registry import SenderRegistry
from src.cache.dedup import DedupStore
from src.db.models.business import PlatformEnum
from src.db.models.conversation import (
    ConversationORM,
    ConversationStatusEnum,
    SenderTypeEnum,
)
from src.db.models.integration import IntegrationORM
from src.db.repositories.business_repo import BotRepository
from src.db.repositories.conversation_repo import ConversationRepository, MessageRepository
from src.db.repositories.integration_repo import IntegrationRepository
from src.inbound.conversations import ConversationResolver, has_placeholder_name
from src.inbound.responder import ResponderClient
from src.settings import Settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestStatus(str, enum.Enum):
    """How an inbound message was handled."""

    DUPLICATE = "duplicate"
    NO_INTEGRATION = "no_integration"
    NO_BOT = "no_bot"
    STORED = "stored"
    PAUSED = "paused"
    SUPERSEDED = "superseded"
    REPLIED = "replied"
    REPLY_FAILED = "reply_failed"


class IngestResult(BaseModel):
    status: IngestStatus
    conversation_id: Optional[UUID] = None
    message_id: Optional[UUID] = None
    reply: Optional[str] = None
    error: Optional[str] = None


def is_reply_blocked(conversation: ConversationORM, now: datetime) -> bool:
    """Whether a paused conversation still blocks automated replies.

    An expired pause is lifted in place (status back to active).
    """
    if conversation.status != ConversationStatusEnum.PAUSED:
        return False
    if conversation.paused_until is not None and conversation.paused_until <= now:
        conversation.status = ConversationStatusEnum.ACTIVE
        conversation.paused_until = None
        return False
    return True


class InboundIngestor:
    """Processes one normalized inbound message end to end.

    Steps: dedup, integration and bot lookup, conversation resolution,
    persistence, reply gating (paused conversations), debounce, then the
    Responder round trip and the reply dispatch.

    Args:
        session_factory: Factory for short-lived sessions.
        dedup: Dedup window for Instagram text duplicates.
        registry: Sender registry used for the reply.
        integrations: Credential loader handed to the sender.
        settings: Debounce, dedup TTL, timeouts and feature flags.
        responder: Responder client; None disables automated replies.
        http_client: Optional shared client (sender and profile lookups).
        sleep: Awaitable sleep used for the debounce window.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dedup: DedupStore,
        registry: SenderRegistry,
        integrations: IntegrationLoader,
        settings: Settings,
        responder: Optional[ResponderClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._dedup = dedup
        self._registry = registry
        self._integrations = integrations
        self._settings = settings
        self._responder = responder
        self._http_client = http_client
        self._sleep = sleep
        self._clock = clock

    async def handle(self, incoming: IncomingMessage) -> IngestResult:
        platform = PlatformEnum(incoming.platform)

        dedup_key: Optional[str] = None
        if platform == PlatformEnum.INSTAGRAM:
            dedup_key = f"instagram:{incoming.sender_id}::{normalize_text(incoming.text)}"
            if await self._dedup.check_and_mark(dedup_key, self._settings.dedup_ttl_seconds):
                logger.info("inbound_duplicate_text: sender_id=%s", incoming.sender_id)
                return IngestResult(status=IngestStatus.DUPLICATE)

        now = self._clock()
        async with self._session_factory() as session:
            try:
                integration = await IntegrationRepository(session).find_by_account(
                    platform, incoming.recipient_id
                )
                if integration is None:
                    logger.warning(
                        "inbound_integration_not_found: platform=%s, account_id=%s",
                        platform.value,
                        incoming.recipient_id,
                    )
                    return IngestResult(status=IngestStatus.NO_INTEGRATION)

                if await MessageRepository(session).exists_by_provider_id(
                    incoming.provider_message_id
                ):
                    logger.info(
                        "inbound_duplicate_message: provider_message_id=%s",
                        incoming.provider_message_id,
                    )
                    return IngestResult(status=IngestStatus.DUPLICATE)

                bot = await BotRepository(session).get_active_for_owner(
                    integration.owner_id, platform
                )
                if bot is None:
                    logger.warning(
                        "inbound_bot_not_found: owner_id=%s, platform=%s",
                        integration.owner_id,
                        platform.value,
                    )
                    return IngestResult(status=IngestStatus.NO_BOT)

                resolver = ConversationResolver(session)
                conversation, _ = await resolver.resolve(
                    integration.owner_id,
                    bot.id,
                    platform,
                    incoming.sender_id,
                    display_name=incoming.sender_name,
                )
                stored = await resolver.append_message(
                    conversation,
                    SenderTypeEnum.CLIENT,
                    incoming.text,
                    now,
                    metadata={
                        "platform": platform.value,
                        "platform_message_id": incoming.provider_message_id,
                        "message_type": incoming.message_type,
                        "sender_id": incoming.sender_id,
                        "timestamp": incoming.timestamp.isoformat(),
                    },
                )

                client = await resolver.find_client(
                    integration.owner_id, platform, incoming.sender_id
                )
                if client is not None:
                    client.last_interaction_at = now
                    if conversation.client_id is None:
                        conversation.client_id = client.id
                await session.commit()
            except Exception:
                # Nothing was stored; release the mark for the redelivery.
                if dedup_key is not None:
                    await self._dedup.forget(dedup_key)
                raise

            await self._upgrade_name(session, conversation, incoming, integration)

            result = IngestResult(
                status=IngestStatus.STORED,
                conversation_id=conversation.id,
                message_id=stored.id,
            )
            if self._responder is None or not self._settings.feature_flags.enable_ai_replies:
                return result

            paused = conversation.status == ConversationStatusEnum.PAUSED
            if is_reply_blocked(conversation, now):
                logger.info("inbound_conversation_paused: conversation_id=%s", conversation.id)
                result.status = IngestStatus.PAUSED
                return result
            if paused:
                await session.commit()
                logger.info("inbound_pause_expired: conversation_id=%s", conversation.id)

            owner_id = integration.owner_id
            bot_id = bot.id
            client_name = conversation.client_name
            stored_at = stored.created_at or now

        await self._sleep(self._settings.debounce_seconds)

        async with self._session_factory() as session:
            if await MessageRepository(session).has_newer_client_message(
                result.conversation_id, stored_at, stored.id
            ):
                logger.info(
                    "inbound_superseded: conversation_id=%s, message_id=%s",
                    result.conversation_id,
                    stored.id,
                )
                result.status = IngestStatus.SUPERSEDED
                return result

        reply = await self._responder.reply(
            bot_id,
            incoming.text,
            result.conversation_id,
            {
                "platform": platform.value,
                "id": incoming.sender_id,
                "name": client_name,
            },
        )
        if not reply:
            result.status = IngestStatus.REPLY_FAILED
            result.error = "Responder returned no reply"
            return result
        result.reply = reply

        async with self._session_factory() as session:
            conversation = await ConversationRepository(session).get_by_id(result.conversation_id)
            await ConversationResolver(session).append_message(
                conversation,
                SenderTypeEnum.BOT,
                reply,
                self._clock(),
                metadata={"platform": platform.value, "source": "responder"},
            )
            await session.commit()

        sender = self._registry.get_sender(
            platform.value,
            self._integrations,
            http_client=self._http_client,
            timeout=self._settings.provider_timeout_seconds,
        )
        outbound = OutboundMessage(
            owner_id=owner_id,
            platform=platform,
            content=reply,
            recipient_name=client_name,
            recipient_phone=incoming.sender_id if platform == PlatformEnum.WHATSAPP else None,
            recipient_instagram_id=(
                incoming.sender_id if platform == PlatformEnum.INSTAGRAM else None
            ),
        )
        send_result = await sender.send(
            outbound, BotRef(id=bot_id, owner_id=owner_id, platform=platform)
        )
        if not send_result.success:
            logger.warning(
                "inbound_reply_send_failed: conversation_id=%s, error=%s",
                result.conversation_id,
                send_result.error,
            )
            result.status = IngestStatus.REPLY_FAILED
            result.error = send_result.error
            return result

        logger.info(
            "inbound_replied: conversation_id=%s, provider_message_id=%s",
            result.conversation_id,
            send_result.provider_message_id,
        )
        result.status = IngestStatus.REPLIED
        return result

    async def _upgrade_name(
        self,
        session: AsyncSession,
        conversation: ConversationORM,
        incoming: IncomingMessage,
        integration: IntegrationORM,
    ) -> None:
        """Replace a placeholder conversation name with the provider profile name."""
        if not has_placeholder_name(conversation):
            return

        name = incoming.sender_name
        if not name and PlatformEnum(incoming.platform) == PlatformEnum.INSTAGRAM:
            access_token = (integration.config or {}).get("access_token")
            if access_token:
                if self._http_client is not None:
                    name = await fetch_instagram_username(
                        self._http_client, access_token, incoming.sender_id
                    )
                else:
                    async with httpx.AsyncClient(
                        timeout=self._settings.provider_timeout_seconds
                    ) as client:
                        name = await fetch_instagram_username(
                            client, access_token, incoming.sender_id
                        )

        if name and name != conversation.client_name:
            conversation.client_name = name
            await session.commit()
            logger.info("conversation_name_updated: conversation_id=%s", conversation.id)
