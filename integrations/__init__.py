"""Platform integrations for outbound dispatch and inbound webhooks.

Supports WhatsApp (Cloud API), Instagram (Messaging API) and email
(SendGrid, Mailgun, SES placeholder).
"""

from integrations.base import PlatformSender
from integrations.credentials import DatabaseIntegrationLoader, IntegrationLoader
from integrations.email import EmailSender
from integrations.instagram import InstagramSender, parse_instagram_webhook
from integrations.meta_signature import validate_meta_signature
from integrations.models import (
    BotRef,
    IncomingMessage,
    IntegrationCredentials,
    OutboundMessage,
    PlatformType,
    SendResult,
)
from integrations.registry import SenderRegistry, default_registry
from integrations.whatsapp import WhatsAppSender, parse_whatsapp_webhook

# Register platform senders in default registry
default_registry.register("whatsapp", WhatsAppSender)
default_registry.register("instagram", InstagramSender)
default_registry.register("email", EmailSender)

__all__ = [
    "BotRef",
    "DatabaseIntegrationLoader",
    "EmailSender",
    "IncomingMessage",
    "InstagramSender",
    "IntegrationCredentials",
    "IntegrationLoader",
    "OutboundMessage",
    "PlatformSender",
    "PlatformType",
    "SendResult",
    "SenderRegistry",
    "WhatsAppSender",
    "default_registry",
    "parse_instagram_webhook",
    "parse_whatsapp_webhook",
    "validate_meta_signature",
]
