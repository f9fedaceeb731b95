"""Unit tests for src/inbound/conversations.py."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from src.db.models.business import PlatformEnum
from src.db.models.conversation import ConversationStatusEnum, SenderTypeEnum
from src.inbound.conversations import (
    ConversationResolver,
    has_placeholder_name,
    normalize_phone,
    phone_variants,
    placeholder_name,
)

NOW = datetime(2024, 11, 15, 12, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestPhoneVariants:
    """Test the phone spellings a stored client may use."""

    def test_international_mobile_number(self) -> None:
        assert phone_variants("+54 9 261 123-4567") == [
            "5492611234567",
            "+5492611234567",
            "2611234567",
            "+2611234567",
            "542611234567",
            "+542611234567",
        ]

    def test_local_number_with_trunk_zero(self) -> None:
        variants = phone_variants("0261 1234567")

        assert variants[0] == "02611234567"
        assert "2611234567" in variants
        assert "5492611234567" in variants
        assert "+542611234567" in variants

    def test_country_code_without_mobile_nine(self) -> None:
        variants = phone_variants("542611234567")

        assert "2611234567" in variants
        assert "5492611234567" in variants

    def test_variants_are_distinct(self) -> None:
        variants = phone_variants("5492611234567")
        assert len(variants) == len(set(variants))

    def test_no_digits(self) -> None:
        assert phone_variants("") == []
        assert phone_variants(None) == []
        assert phone_variants("n/a") == []

    def test_normalize_phone_keeps_digits(self) -> None:
        assert normalize_phone("+54 9 261 123-4567") == "5492611234567"
        assert normalize_phone(None) == ""

    def test_formatted_and_webhook_forms_share_variants(self) -> None:
        assert set(phone_variants("+54 9 261 123-4567")) == set(phone_variants("5492611234567"))


@pytest.mark.unit
class TestPlaceholderNames:
    def test_instagram_placeholder(self) -> None:
        assert placeholder_name(PlatformEnum.INSTAGRAM, "1784") == "@instagram_1784"

    def test_phone_placeholder(self) -> None:
        assert placeholder_name(PlatformEnum.WHATSAPP, "5492611234567") == "5492611234567"

    def test_has_placeholder_name(self) -> None:
        def conversation(name):  # type: ignore[no-untyped-def]
            return SimpleNamespace(client_name=name, counterparty_id="5492611234567")

        assert has_placeholder_name(conversation(None)) is True
        assert has_placeholder_name(conversation("5492611234567")) is True
        assert has_placeholder_name(conversation("@instagram_1784")) is True
        assert has_placeholder_name(conversation("Ana")) is False


@pytest.fixture
def repos():
    """Patch the resolver's repositories.

    Yields:
        Namespace with the conversation, message and client repository mocks.
    """
    with (
        patch("src.inbound.conversations.ConversationRepository") as conversations_cls,
        patch("src.inbound.conversations.MessageRepository") as messages_cls,
        patch("src.inbound.conversations.ClientRepository") as clients_cls,
    ):
        conversations = conversations_cls.return_value
        conversations.find_for_counterparty = AsyncMock(return_value=None)
        conversations.create = AsyncMock(
            side_effect=lambda **kwargs: SimpleNamespace(id=uuid4(), **kwargs)
        )
        messages = messages_cls.return_value
        messages.create = AsyncMock(
            side_effect=lambda **kwargs: SimpleNamespace(id=uuid4(), **kwargs)
        )
        clients = clients_cls.return_value
        clients.find_by_phones = AsyncMock(return_value=None)
        clients.find_by_instagram_id = AsyncMock(return_value=None)
        yield SimpleNamespace(conversations=conversations, messages=messages, clients=clients)


@pytest.mark.unit
class TestConversationResolver:
    """Test find-or-create and message append."""

    async def test_returns_existing_conversation(self, repos) -> None:
        existing = SimpleNamespace(id=uuid4(), status=ConversationStatusEnum.ACTIVE)
        repos.conversations.find_for_counterparty.return_value = existing
        bot_id = uuid4()

        conversation, created = await ConversationResolver(MagicMock()).resolve(
            uuid4(), bot_id, PlatformEnum.WHATSAPP, "5492611234567"
        )

        assert conversation is existing
        assert created is False
        call = repos.conversations.find_for_counterparty.await_args
        assert call.args[0] == bot_id
        assert "2611234567" in call.args[2]
        repos.conversations.create.assert_not_awaited()

    async def test_instagram_matches_exact_id_only(self, repos) -> None:
        await ConversationResolver(MagicMock()).resolve(
            uuid4(), uuid4(), PlatformEnum.INSTAGRAM, "1784"
        )

        assert repos.conversations.find_for_counterparty.await_args.args[2] == ["1784"]

    async def test_creates_with_client_name(self, repos) -> None:
        owner_id = uuid4()
        client = SimpleNamespace(id=uuid4(), name="Ana Pérez")
        repos.clients.find_by_phones.return_value = client

        conversation, created = await ConversationResolver(MagicMock()).resolve(
            owner_id, uuid4(), PlatformEnum.WHATSAPP, "5492611234567"
        )

        assert created is True
        assert conversation.client_name == "Ana Pérez"
        assert conversation.client_id == client.id
        assert conversation.status == ConversationStatusEnum.ACTIVE

    async def test_display_name_wins_over_client_name(self, repos) -> None:
        repos.clients.find_by_phones.return_value = SimpleNamespace(id=uuid4(), name="Ana Pérez")

        conversation, _ = await ConversationResolver(MagicMock()).resolve(
            uuid4(), uuid4(), PlatformEnum.WHATSAPP, "5492611234567", display_name="Anita"
        )

        assert conversation.client_name == "Anita"

    async def test_unknown_instagram_sender_gets_placeholder(self, repos) -> None:
        conversation, _ = await ConversationResolver(MagicMock()).resolve(
            uuid4(), uuid4(), PlatformEnum.INSTAGRAM, "1784"
        )

        assert conversation.client_name == "@instagram_1784"
        assert conversation.client_id is None

    async def test_append_message_bumps_last_message_at(self, repos) -> None:
        session = MagicMock()
        session.flush = AsyncMock()
        conversation = SimpleNamespace(id=uuid4(), last_message_at=None)

        message = await ConversationResolver(session).append_message(
            conversation, SenderTypeEnum.CLIENT, "Hola", NOW, metadata={"platform": "whatsapp"}
        )

        assert message.conversation_id == conversation.id
        assert message.sender_type == SenderTypeEnum.CLIENT
        assert message.metadata_json == {"platform": "whatsapp"}
        assert conversation.last_message_at == NOW
        session.flush.assert_awaited_once()

    async def test_record_outbound_appends_bot_message(self, repos) -> None:
        session = MagicMock()
        session.flush = AsyncMock()

        message = await ConversationResolver(session).record_outbound(
            owner_id=uuid4(),
            bot_id=uuid4(),
            platform=PlatformEnum.WHATSAPP,
            counterparty_id="5492611234567",
            content="¡Feliz cumpleaños!",
            now=NOW,
            recipient_name="Ana",
        )

        assert message.sender_type == SenderTypeEnum.BOT
        assert message.content == "¡Feliz cumpleaños!"
        assert repos.conversations.create.await_args.kwargs["client_name"] == "Ana"

    async def test_new_phone_conversation_stores_digits(self, repos) -> None:
        conversation, _ = await ConversationResolver(MagicMock()).resolve(
            uuid4(), uuid4(), PlatformEnum.WHATSAPP, "+54 9 261 123-4567"
        )

        assert conversation.counterparty_id == "5492611234567"
        assert conversation.client_name == "5492611234567"

    async def test_outbound_and_inbound_share_one_conversation(self, repos) -> None:
        """A client typed with spaces and dashes matches the webhook's digits."""
        stored: list[SimpleNamespace] = []

        async def create(**kwargs):  # type: ignore[no-untyped-def]
            conversation = SimpleNamespace(id=uuid4(), **kwargs)
            stored.append(conversation)
            return conversation

        async def find_for_counterparty(  # type: ignore[no-untyped-def]
            bot_id, platform, counterparty_ids
        ):
            matches = [c for c in stored if c.counterparty_id in counterparty_ids]
            return matches[0] if matches else None

        repos.conversations.create.side_effect = create
        repos.conversations.find_for_counterparty.side_effect = find_for_counterparty
        session = MagicMock()
        session.flush = AsyncMock()
        resolver = ConversationResolver(session)
        owner_id, bot_id = uuid4(), uuid4()

        await resolver.record_outbound(
            owner_id=owner_id,
            bot_id=bot_id,
            platform=PlatformEnum.WHATSAPP,
            counterparty_id="+54 9 261 123-4567",
            content="¡Feliz cumpleaños!",
            now=NOW,
        )
        inbound, created = await resolver.resolve(
            owner_id, bot_id, PlatformEnum.WHATSAPP, "5492611234567"
        )

        assert created is False
        assert inbound is stored[0]
        assert len(stored) == 1
