"""WhatsApp Cloud API sender."""

import logging
import re
from typing import Any

from integrations.base import PlatformSender, graph_error
from integrations.models import BotRef, OutboundMessage, PlatformType, SendResult

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com/v18.0"
DEFAULT_TEMPLATE_LANGUAGE = "es"


def normalize_phone(phone: str) -> str:
    """Strip everything but digits (the Cloud API expects ``5492611234567``)."""
    return re.sub(r"\D", "", phone)


def template_components(metadata: dict[str, Any]) -> list[dict[str, Any]]:
    """Resolve the template components for an approved-template message.

    ``metadata.template_components`` wins when present; otherwise the legacy
    flat ``metadata.template_params`` list becomes one body component of
    text parameters.
    """
    components = metadata.get("template_components")
    if components:
        return list(components)

    params = metadata.get("template_params") or []
    if not params:
        return []
    return [
        {
            "type": "body",
            "parameters": [{"type": "text", "text": str(param)} for param in params],
        }
    ]


def build_whatsapp_payload(message: OutboundMessage) -> dict[str, Any]:
    """Build the /messages request body for a text or template message."""
    to = normalize_phone(message.recipient_phone or "")
    metadata = message.metadata or {}

    if metadata.get("is_meta_template") and metadata.get("template_name"):
        template: dict[str, Any] = {
            "name": metadata["template_name"],
            "language": {"code": metadata.get("template_language") or DEFAULT_TEMPLATE_LANGUAGE},
        }
        components = template_components(metadata)
        if components:
            template["components"] = components
        return {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "template",
            "template": template,
        }

    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": "text",
        "text": {"preview_url": False, "body": message.content},
    }


class WhatsAppSender(PlatformSender):
    """WhatsApp Cloud API sender.

    Credentials required in the integration config:
        phone_number_id: Sending phone number id.
        access_token: System user / permanent access token.
    """

    platform: PlatformType = "whatsapp"

    async def _send(self, message: OutboundMessage, bot: BotRef) -> SendResult:
        credentials = await self._integrations.load(message.owner_id, "whatsapp")
        if credentials is None:
            return SendResult.failed("WhatsApp integration not found or inactive")

        phone_number_id = credentials.config.get("phone_number_id")
        access_token = credentials.config.get("access_token")
        if not phone_number_id or not access_token:
            return SendResult.failed(
                "WhatsApp integration is missing phone_number_id or access_token"
            )
        if not message.recipient_phone or not normalize_phone(message.recipient_phone):
            return SendResult.failed("Recipient has no phone number")

        payload = build_whatsapp_payload(message)
        logger.info(
            "whatsapp_send: message_id=%s, bot_id=%s, type=%s",
            message.id,
            bot.id,
            payload["type"],
        )
        async with self._http() as client:
            response = await client.post(
                f"{GRAPH_API_BASE}/{phone_number_id}/messages",
                json=payload,
                headers={"Authorization": f"Bearer {access_token}"},
            )

        if response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = {}
            messages = body.get("messages") if isinstance(body, dict) else None
            if messages and messages[0].get("id"):
                return SendResult.sent(messages[0]["id"])
            return SendResult.failed("WhatsApp API response did not include a message id")

        return SendResult.failed(graph_error(response, "WhatsApp"))
