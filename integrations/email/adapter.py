"""Email sender delegating to the configured provider."""

import logging
from typing import Optional

import httpx

from integrations.base import PlatformSender
from integrations.credentials import IntegrationLoader
from integrations.email.providers import EmailProviderRegistry, default_email_providers
from integrations.models import BotRef, OutboundMessage, PlatformType, SendResult

logger = logging.getLogger(__name__)


class EmailSender(PlatformSender):
    """Email sender.

    The owner's email integration names its backend in ``config["provider"]``
    (sendgrid, mailgun or ses); the rest of the config is handed to that
    provider.
    """

    platform: PlatformType = "email"

    def __init__(
        self,
        integrations: IntegrationLoader,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        providers: Optional[EmailProviderRegistry] = None,
    ) -> None:
        super().__init__(integrations, http_client=http_client, timeout=timeout)
        self._providers = providers or default_email_providers

    async def _send(self, message: OutboundMessage, bot: BotRef) -> SendResult:
        credentials = await self._integrations.load(message.owner_id, "email")
        if credentials is None:
            return SendResult.failed("Email integration not found or inactive")
        if not message.recipient_email:
            return SendResult.failed("Recipient has no email address")

        provider_name = credentials.config.get("provider") or ""
        try:
            provider = self._providers.get_provider(provider_name, credentials.config)
        except ValueError as e:
            return SendResult.failed(str(e))

        logger.info(
            "email_send: message_id=%s, bot_id=%s, provider=%s",
            message.id,
            bot.id,
            provider_name,
        )
        async with self._http() as client:
            return await provider.send(message, client)
