"""WhatsApp Cloud API webhook payload parsing."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from integrations.models import IncomingMessage

logger = logging.getLogger(__name__)

MEDIA_TYPES = ("image", "document", "audio", "video")


def _parse_timestamp(value: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)


def _message_text(message: dict[str, Any]) -> Optional[str]:
    message_type = message.get("type")
    if message_type == "text":
        return (message.get("text") or {}).get("body")
    if message_type in MEDIA_TYPES:
        media = message.get(message_type) or {}
        return media.get("caption") or f"[{message_type}]"
    if message_type == "button":
        return (message.get("button") or {}).get("text")
    if message_type == "interactive":
        interactive = message.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return reply.get("title")
    return None


def parse_whatsapp_webhook(payload: dict[str, Any]) -> list[IncomingMessage]:
    """Extract inbound messages from a WhatsApp webhook delivery.

    Walks ``entry[].changes[].value.messages``. Status callbacks (sent,
    delivered, read) and unsupported message types are skipped.

    Args:
        payload: Parsed JSON body.

    Returns:
        Normalized messages, in delivery order.
    """
    if payload.get("object") not in (None, "whatsapp_business_account"):
        return []

    incoming: list[IncomingMessage] = []
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            phone_number_id = (value.get("metadata") or {}).get("phone_number_id")
            names = {
                contact.get("wa_id"): (contact.get("profile") or {}).get("name")
                for contact in value.get("contacts") or []
            }
            for message in value.get("messages") or []:
                text = _message_text(message)
                sender = message.get("from")
                if not text or not sender or not message.get("id") or not phone_number_id:
                    logger.info(
                        "whatsapp_message_skipped: type=%s, id=%s",
                        message.get("type"),
                        message.get("id"),
                    )
                    continue
                incoming.append(
                    IncomingMessage(
                        platform="whatsapp",
                        provider_message_id=message["id"],
                        sender_id=sender,
                        recipient_id=str(phone_number_id),
                        text=text,
                        sender_name=names.get(sender),
                        message_type=message.get("type", "text"),
                        timestamp=_parse_timestamp(message.get("timestamp")),
                        raw_payload=message,
                    )
                )
    return incoming
