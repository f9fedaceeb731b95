"""Email delivery providers selected by the integration's ``provider`` key."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Type

import httpx

from integrations.models import EmailProviderType, OutboundMessage, SendResult

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Mensaje automático"
SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
MAILGUN_API_BASE = "https://api.mailgun.net"
MAILGUN_EU_API_BASE = "https://api.eu.mailgun.net"


class EmailProvider(ABC):
    """One email delivery backend.

    Args:
        config: The email integration config (provider keys included).
    """

    name: EmailProviderType

    def __init__(self, config: dict[str, Any]) -> None:
        self.config = config

    @abstractmethod
    async def send(self, message: OutboundMessage, client: httpx.AsyncClient) -> SendResult:
        """Deliver ``message`` to ``message.recipient_email``."""
        ...


class SendGridProvider(EmailProvider):
    """SendGrid v3 mail/send.

    Config: api_key, from_email, optional from_name.
    """

    name: EmailProviderType = "sendgrid"

    async def send(self, message: OutboundMessage, client: httpx.AsyncClient) -> SendResult:
        api_key = self.config.get("api_key")
        from_email = self.config.get("from_email")
        if not api_key or not from_email:
            return SendResult.failed("SendGrid config requires api_key and from_email")

        sender: dict[str, str] = {"email": from_email}
        if self.config.get("from_name"):
            sender["name"] = self.config["from_name"]
        payload = {
            "personalizations": [
                {
                    "to": [{"email": message.recipient_email}],
                    "subject": message.subject or DEFAULT_SUBJECT,
                }
            ],
            "from": sender,
            "content": [{"type": "text/plain", "value": message.content}],
        }
        response = await client.post(
            SENDGRID_URL,
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        if response.is_success:
            return SendResult.sent(response.headers.get("x-message-id") or "sendgrid_sent")
        return SendResult.failed(f"SendGrid error ({response.status_code}): {response.text[:500]}")


class MailgunProvider(EmailProvider):
    """Mailgun messages API.

    Config: api_key, domain, from_email, optional from_name and region ("eu").
    """

    name: EmailProviderType = "mailgun"

    async def send(self, message: OutboundMessage, client: httpx.AsyncClient) -> SendResult:
        api_key = self.config.get("api_key")
        domain = self.config.get("domain")
        from_email = self.config.get("from_email")
        if not api_key or not domain or not from_email:
            return SendResult.failed("Mailgun config requires api_key, domain and from_email")

        from_name = self.config.get("from_name")
        base = MAILGUN_EU_API_BASE if self.config.get("region") == "eu" else MAILGUN_API_BASE
        response = await client.post(
            f"{base}/v3/{domain}/messages",
            auth=("api", api_key),
            data={
                "from": f"{from_name} <{from_email}>" if from_name else from_email,
                "to": message.recipient_email,
                "subject": message.subject or DEFAULT_SUBJECT,
                "text": message.content,
            },
        )
        if not response.is_success:
            return SendResult.failed(
                f"Mailgun error ({response.status_code}): {response.text[:500]}"
            )
        try:
            body = response.json()
        except ValueError:
            body = {}
        provider_id = body.get("id") if isinstance(body, dict) else None
        return SendResult.sent(provider_id or "mailgun_sent")


class SesProvider(EmailProvider):
    """Amazon SES placeholder; reports not-implemented through the normal result."""

    name: EmailProviderType = "ses"

    async def send(self, message: OutboundMessage, client: httpx.AsyncClient) -> SendResult:
        logger.warning("ses_not_implemented: message_id=%s", message.id)
        return SendResult.failed("SES email provider is not implemented")


class EmailProviderRegistry:
    """Maps ``config["provider"]`` values to provider classes."""

    def __init__(self) -> None:
        self._providers: Dict[str, Type[EmailProvider]] = {}

    def register(self, name: EmailProviderType, provider_class: Type[EmailProvider]) -> None:
        self._providers[name] = provider_class

    def get_provider(self, name: str, config: dict[str, Any]) -> EmailProvider:
        """Instantiate the provider registered as ``name``.

        Raises:
            ValueError: If no provider is registered under ``name``.
        """
        provider_class = self._providers.get(name)
        if provider_class is None:
            raise ValueError(f"Unsupported email provider: {name}")
        return provider_class(config)

    def list_providers(self) -> list[str]:
        return list(self._providers.keys())


default_email_providers = EmailProviderRegistry()
default_email_providers.register("sendgrid", SendGridProvider)
default_email_providers.register("mailgun", MailgunProvider)
default_email_providers.register("ses", SesProvider)
