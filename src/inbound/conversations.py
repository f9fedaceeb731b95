"""Conversation resolution shared by inbound ingestion and outbound dispatch."""

import logging
import re
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.business import ClientORM, PlatformEnum
from src.db.models.conversation import (
    ConversationORM,
    ConversationStatusEnum,
    MessageORM,
    SenderTypeEnum,
)
from src.db.repositories.business_repo import ClientRepository
from src.db.repositories.conversation_repo import ConversationRepository, MessageRepository

logger = logging.getLogger(__name__)

# Argentine country code, with and without the mobile "9".
_COUNTRY_PREFIXES = ("549", "54")

PHONE_PLATFORMS = (PlatformEnum.WHATSAPP,)


def normalize_phone(phone: Optional[str]) -> str:
    """Digits only: the form phone counterparties are stored under."""
    return re.sub(r"\D", "", phone or "")


def phone_variants(phone: Optional[str]) -> list[str]:
    """Return the spellings under which one phone number may be stored.

    WhatsApp reports ``5492611234567`` while owners often type ``2611234567``
    or ``+54 9 261 1234567``. The variants cover the digits as given, the
    local number (country code, mobile ``9`` and trunk ``0`` removed), the
    local number with ``54`` and ``549`` prepended, and a ``+`` form of each.

    Args:
        phone: Raw phone number in any format.

    Returns:
        Distinct variants, the caller's digits first. Empty for no digits.
    """
    digits = normalize_phone(phone)
    if not digits:
        return []

    local = digits
    for prefix in _COUNTRY_PREFIXES:
        if local.startswith(prefix):
            local = local[len(prefix):]
            break
    local = local.lstrip("0")

    candidates = [digits]
    if local:
        candidates.extend([local, f"54{local}", f"549{local}"])

    variants: list[str] = []
    for candidate in candidates:
        for variant in (candidate, f"+{candidate}"):
            if variant not in variants:
                variants.append(variant)
    return variants


def placeholder_name(platform: PlatformEnum, counterparty_id: str) -> str:
    """Display name used until the provider profile supplies a real one."""
    if platform == PlatformEnum.INSTAGRAM:
        return f"@instagram_{counterparty_id}"
    return counterparty_id


def has_placeholder_name(conversation: ConversationORM) -> bool:
    name = conversation.client_name or ""
    return (
        not name
        or name == conversation.counterparty_id
        or name.startswith("@instagram_")
    )


class ConversationResolver:
    """Find-or-create conversations for a (bot, platform, counterparty).

    Works inside the caller's session; flushes only.

    Args:
        session: AsyncSession for database operations.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._conversations = ConversationRepository(session)
        self._messages = MessageRepository(session)
        self._clients = ClientRepository(session)

    def _candidates(self, platform: PlatformEnum, counterparty_id: str) -> list[str]:
        if platform in PHONE_PLATFORMS:
            return phone_variants(counterparty_id) or [counterparty_id]
        return [counterparty_id]

    async def find_client(
        self, owner_id: UUID, platform: PlatformEnum, counterparty_id: str
    ) -> Optional[ClientORM]:
        """Find the business's client behind a counterparty id."""
        if platform in PHONE_PLATFORMS:
            return await self._clients.find_by_phones(owner_id, phone_variants(counterparty_id))
        if platform == PlatformEnum.INSTAGRAM:
            return await self._clients.find_by_instagram_id(owner_id, counterparty_id)
        return None

    async def resolve(
        self,
        owner_id: UUID,
        bot_id: UUID,
        platform: PlatformEnum,
        counterparty_id: str,
        display_name: Optional[str] = None,
    ) -> tuple[ConversationORM, bool]:
        """Return the conversation for a counterparty, creating it if needed.

        An active conversation is preferred over a paused one. For phone
        platforms every phone variant of ``counterparty_id`` matches, and a
        new conversation stores the digits only, so a client typed as
        ``+54 9 261 123-4567`` and the webhook sender ``5492611234567`` share
        one thread.

        Args:
            owner_id: Business owner.
            bot_id: Bot that handles the thread.
            platform: Channel.
            counterparty_id: Phone, Instagram-scoped id or email address.
            display_name: Name to seed a new conversation with.

        Returns:
            Tuple of (conversation, created).
        """
        existing = await self._conversations.find_for_counterparty(
            bot_id, platform, self._candidates(platform, counterparty_id)
        )
        if existing is not None:
            return existing, False

        if platform in PHONE_PLATFORMS:
            counterparty_id = normalize_phone(counterparty_id) or counterparty_id
        client = await self.find_client(owner_id, platform, counterparty_id)
        name = display_name or (client.name if client and client.name else None)
        conversation = await self._conversations.create(
            owner_id=owner_id,
            bot_id=bot_id,
            client_id=client.id if client else None,
            platform=platform,
            counterparty_id=counterparty_id,
            client_name=name or placeholder_name(platform, counterparty_id),
            status=ConversationStatusEnum.ACTIVE,
        )
        logger.info(
            "conversation_created: conversation_id=%s, bot_id=%s, platform=%s",
            conversation.id,
            bot_id,
            platform.value,
        )
        return conversation, True

    async def append_message(
        self,
        conversation: ConversationORM,
        sender_type: SenderTypeEnum,
        content: str,
        now: datetime,
        metadata: Optional[dict[str, Any]] = None,
    ) -> MessageORM:
        """Append a message and bump the conversation's last_message_at."""
        message = await self._messages.create(
            conversation_id=conversation.id,
            sender_type=sender_type,
            content=content,
            metadata_json=metadata or {},
        )
        conversation.last_message_at = now
        await self._session.flush()
        return message

    async def record_outbound(
        self,
        owner_id: UUID,
        bot_id: UUID,
        platform: PlatformEnum,
        counterparty_id: str,
        content: str,
        now: datetime,
        recipient_name: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> MessageORM:
        """Append a dispatched message to the recipient's conversation as a bot message."""
        conversation, _ = await self.resolve(
            owner_id, bot_id, platform, counterparty_id, display_name=recipient_name
        )
        return await self.append_message(
            conversation, SenderTypeEnum.BOT, content, now, metadata=metadata
        )
