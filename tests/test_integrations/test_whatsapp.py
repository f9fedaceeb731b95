"""Unit tests for the WhatsApp Cloud API sender and webhook parser."""

import json
from typing import Any, Optional
from uuid import UUID

import httpx
import pytest

from integrations.credentials import IntegrationLoader
from integrations.models import BotRef, IntegrationCredentials, OutboundMessage
from integrations.whatsapp import (
    WhatsAppSender,
    build_whatsapp_payload,
    normalize_phone,
    parse_whatsapp_webhook,
)

OWNER_ID = UUID("a1b2c3d4-e5f6-7890-abcd-ef1234567890")
BOT = BotRef(id=UUID("87654321-4321-8765-4321-876543218765"), owner_id=OWNER_ID, platform="whatsapp")


class _StaticLoader(IntegrationLoader):
    """Returns a fixed config (or nothing) for every lookup."""

    def __init__(self, config: Optional[dict[str, Any]]) -> None:
        self._config = config

    async def load(self, owner_id, platform):  # type: ignore[no-untyped-def]
        if self._config is None:
            return None
        return IntegrationCredentials(owner_id=owner_id, platform=platform, config=self._config)


def _message(**overrides: Any) -> OutboundMessage:
    fields: dict[str, Any] = {
        "owner_id": OWNER_ID,
        "platform": "whatsapp",
        "content": "¡Feliz cumpleaños Ana!",
        "recipient_phone": "+54 9 261 123-4567",
    }
    fields.update(overrides)
    return OutboundMessage(**fields)


def _sender(handler, config=None) -> WhatsAppSender:  # type: ignore[no-untyped-def]
    loader = _StaticLoader(
        config if config is not None else {"phone_number_id": "10987", "access_token": "tok"}
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WhatsAppSender(loader, http_client=client)


@pytest.mark.unit
class TestBuildWhatsAppPayload:
    def test_normalize_phone_keeps_digits(self) -> None:
        assert normalize_phone("+54 9 (261) 123-4567") == "5492611234567"

    def test_text_payload(self) -> None:
        payload = build_whatsapp_payload(_message())

        assert payload == {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": "5492611234567",
            "type": "text",
            "text": {"preview_url": False, "body": "¡Feliz cumpleaños Ana!"},
        }

    def test_template_payload_from_flat_params(self) -> None:
        message = _message(
            metadata={
                "is_meta_template": True,
                "template_name": "cumple_v2",
                "template_params": ["Ana", 15],
            }
        )

        payload = build_whatsapp_payload(message)

        assert payload["type"] == "template"
        assert payload["template"] == {
            "name": "cumple_v2",
            "language": {"code": "es"},
            "components": [
                {
                    "type": "body",
                    "parameters": [
                        {"type": "text", "text": "Ana"},
                        {"type": "text", "text": "15"},
                    ],
                }
            ],
        }

    def test_explicit_components_win(self) -> None:
        components = [{"type": "header", "parameters": [{"type": "image", "image": {"link": "x"}}]}]
        message = _message(
            metadata={
                "is_meta_template": True,
                "template_name": "promo",
                "template_language": "es_AR",
                "template_components": components,
                "template_params": ["ignored"],
            }
        )

        template = build_whatsapp_payload(message)["template"]

        assert template["language"] == {"code": "es_AR"}
        assert template["components"] == components

    def test_template_without_params_has_no_components(self) -> None:
        message = _message(metadata={"is_meta_template": True, "template_name": "hola"})

        assert "components" not in build_whatsapp_payload(message)["template"]

    def test_template_flag_without_name_sends_text(self) -> None:
        message = _message(metadata={"is_meta_template": True})

        assert build_whatsapp_payload(message)["type"] == "text"


@pytest.mark.unit
class TestWhatsAppSender:
    async def test_success_returns_wamid(self) -> None:
        seen: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.HBgN"}]})

        result = await _sender(handler).send(_message(), BOT)

        assert result.success is True
        assert result.provider_message_id == "wamid.HBgN"
        assert seen["url"] == "https://graph.facebook.com/v18.0/10987/messages"
        assert seen["auth"] == "Bearer tok"
        assert seen["body"]["to"] == "5492611234567"

    async def test_graph_error_message_is_reported(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "Invalid parameter"}})

        result = await _sender(handler).send(_message(), BOT)

        assert result.success is False
        assert result.error == "WhatsApp API error (400): Invalid parameter"

    async def test_success_without_message_id_fails(self) -> None:
        result = await _sender(lambda request: httpx.Response(200, json={})).send(_message(), BOT)

        assert result.success is False
        assert "message id" in result.error

    async def test_missing_integration(self) -> None:
        sender = WhatsAppSender(_StaticLoader(None))

        result = await sender.send(_message(), BOT)

        assert result.success is False
        assert result.error == "WhatsApp integration not found or inactive"

    async def test_missing_credentials(self) -> None:
        result = await _sender(lambda request: httpx.Response(200), config={"access_token": "tok"}).send(
            _message(), BOT
        )

        assert result.success is False
        assert "phone_number_id" in result.error

    async def test_missing_phone(self) -> None:
        result = await _sender(lambda request: httpx.Response(200)).send(
            _message(recipient_phone=None), BOT
        )

        assert result.success is False
        assert result.error == "Recipient has no phone number"

    async def test_timeout_is_reported_not_raised(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = await _sender(handler).send(_message(), BOT)

        assert result.success is False
        assert result.error == "whatsapp request timed out after 10.0s"

    async def test_network_error_is_reported_not_raised(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await _sender(handler).send(_message(), BOT)

        assert result.success is False
        assert result.error == "connection refused"


@pytest.mark.unit
class TestParseWhatsAppWebhook:
    @staticmethod
    def _payload(*messages: dict[str, Any]) -> dict[str, Any]:
        return {
            "object": "whatsapp_business_account",
            "entry": [
                {
                    "id": "WABA_ID",
                    "changes": [
                        {
                            "field": "messages",
                            "value": {
                                "messaging_product": "whatsapp",
                                "metadata": {"phone_number_id": "10987"},
                                "contacts": [
                                    {"wa_id": "5492611234567", "profile": {"name": "Ana"}}
                                ],
                                "messages": list(messages),
                            },
                        }
                    ],
                }
            ],
        }

    def test_text_message(self) -> None:
        payload = self._payload(
            {
                "from": "5492611234567",
                "id": "wamid.1",
                "timestamp": "1700000000",
                "type": "text",
                "text": {"body": "Hola"},
            }
        )

        [message] = parse_whatsapp_webhook(payload)

        assert message.platform == "whatsapp"
        assert message.provider_message_id == "wamid.1"
        assert message.sender_id == "5492611234567"
        assert message.recipient_id == "10987"
        assert message.text == "Hola"
        assert message.sender_name == "Ana"
        assert message.timestamp.year == 2023

    def test_media_caption_and_placeholder(self) -> None:
        payload = self._payload(
            {"from": "1", "id": "wamid.1", "type": "image", "image": {"caption": "mirá"}},
            {"from": "1", "id": "wamid.2", "type": "audio", "audio": {"id": "m"}},
        )

        texts = [message.text for message in parse_whatsapp_webhook(payload)]

        assert texts == ["mirá", "[audio]"]

    def test_interactive_and_button_replies(self) -> None:
        payload = self._payload(
            {
                "from": "1",
                "id": "wamid.1",
                "type": "interactive",
                "interactive": {"type": "button_reply", "button_reply": {"title": "Sí"}},
            },
            {"from": "1", "id": "wamid.2", "type": "button", "button": {"text": "Confirmar"}},
        )

        texts = [message.text for message in parse_whatsapp_webhook(payload)]

        assert texts == ["Sí", "Confirmar"]

    def test_status_callbacks_and_unsupported_types_are_skipped(self) -> None:
        payload = self._payload({"from": "1", "id": "wamid.1", "type": "sticker"})
        payload["entry"][0]["changes"][0]["value"]["statuses"] = [{"status": "read"}]

        assert parse_whatsapp_webhook(payload) == []

    def test_other_object_is_ignored(self) -> None:
        assert parse_whatsapp_webhook({"object": "page", "entry": [{}]}) == []
