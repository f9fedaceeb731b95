"""Instagram messaging webhook payload parsing."""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from integrations.models import IncomingMessage

logger = logging.getLogger(__name__)

# Attachment types Meta emits for system events rather than user messages.
IGNORED_ATTACHMENT_TYPES = ("template", "fallback")


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace (the Instagram dedup key form)."""
    return re.sub(r"\s+", " ", text.lower()).strip()


def _parse_timestamp(value: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)


def _message_text(message: dict[str, Any]) -> Optional[str]:
    text = (message.get("text") or "").strip()
    if text:
        return text
    attachments = message.get("attachments") or []
    if not attachments:
        return None
    attachment_type = attachments[0].get("type")
    if attachment_type in IGNORED_ATTACHMENT_TYPES:
        return None
    return f"[Attachment: {attachment_type}]"


def parse_instagram_webhook(payload: dict[str, Any]) -> list[IncomingMessage]:
    """Extract inbound messages from an Instagram webhook delivery.

    Walks ``entry[].messaging[]``. Echoes of the business's own messages,
    events without a message and system attachments are skipped.

    Args:
        payload: Parsed JSON body.

    Returns:
        Normalized messages, in delivery order.
    """
    if payload.get("object") not in (None, "instagram"):
        return []

    incoming: list[IncomingMessage] = []
    for entry in payload.get("entry") or []:
        for event in entry.get("messaging") or []:
            message = event.get("message")
            if not message or message.get("is_echo"):
                continue

            sender_id = (event.get("sender") or {}).get("id")
            recipient_id = (event.get("recipient") or {}).get("id") or entry.get("id")
            text = _message_text(message)
            if not text or not sender_id or not recipient_id or not message.get("mid"):
                logger.info("instagram_message_skipped: mid=%s", message.get("mid"))
                continue

            incoming.append(
                IncomingMessage(
                    platform="instagram",
                    provider_message_id=message["mid"],
                    sender_id=str(sender_id),
                    recipient_id=str(recipient_id),
                    text=text,
                    message_type="text" if message.get("text") else "attachment",
                    timestamp=_parse_timestamp(event.get("timestamp")),
                    raw_payload=event,
                )
            )
    return incoming
