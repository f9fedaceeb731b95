"""Email sender and its delivery providers."""

from integrations.email.adapter import EmailSender
from integrations.email.providers import (
    EmailProvider,
    EmailProviderRegistry,
    MailgunProvider,
    SendGridProvider,
    SesProvider,
    default_email_providers,
)

__all__ = [
    "EmailProvider",
    "EmailProviderRegistry",
    "EmailSender",
    "MailgunProvider",
    "SendGridProvider",
    "SesProvider",
    "default_email_providers",
]
