"""WhatsApp Cloud API sender and webhook parsing."""

from integrations.whatsapp.adapter import WhatsAppSender, build_whatsapp_payload, normalize_phone
from integrations.whatsapp.webhook import parse_whatsapp_webhook

__all__ = [
    "WhatsAppSender",
    "build_whatsapp_payload",
    "normalize_phone",
    "parse_whatsapp_webhook",
]
