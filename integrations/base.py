"""Abstract base class for outbound platform senders."""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from integrations.credentials import IntegrationLoader
from integrations.models import BotRef, OutboundMessage, PlatformType, SendResult

logger = logging.getLogger(__name__)


def graph_error(response: httpx.Response, label: str) -> str:
    """Format a Meta Graph API error response.

    Uses ``error.message`` from the JSON body when present, else the raw body.
    """
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        message = body["error"].get("message")
        if message:
            return f"{label} API error ({response.status_code}): {message}"
    return f"{label} API error ({response.status_code}): {response.text[:500]}"


class PlatformSender(ABC):
    """Base class for messaging platform senders.

    All senders (WhatsApp, Instagram, email) implement ``_send``. The public
    ``send`` normalizes every non-database failure into a failed
    ``SendResult``, so a provider problem never aborts a dispatch batch.
    Database errors raised while loading credentials propagate.

    Args:
        integrations: Credential loader.
        http_client: Shared client; when None each send opens its own.
        timeout: Per-request timeout in seconds.
    """

    platform: PlatformType

    def __init__(
        self,
        integrations: IntegrationLoader,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self._integrations = integrations
        self._http_client = http_client
        self._timeout = timeout

    async def send(self, message: OutboundMessage, bot: BotRef) -> SendResult:
        """Deliver one message through the provider.

        Args:
            message: Queued message snapshot.
            bot: Bot the message is sent on behalf of.

        Returns:
            SendResult with the provider message id, or the failure reason.

        Raises:
            SQLAlchemyError: If the credential lookup hits a database error.
        """
        try:
            return await self._send(message, bot)
        except SQLAlchemyError:
            raise
        except httpx.TimeoutException:
            logger.warning(
                "send_timeout: platform=%s, message_id=%s, timeout=%s",
                self.platform,
                message.id,
                self._timeout,
            )
            return SendResult.failed(f"{self.platform} request timed out after {self._timeout}s")
        except Exception as e:
            logger.exception(
                "send_unexpected_error: platform=%s, message_id=%s", self.platform, message.id
            )
            return SendResult.failed(str(e) or type(e).__name__)

    @abstractmethod
    async def _send(self, message: OutboundMessage, bot: BotRef) -> SendResult:
        """Platform-specific delivery."""
        ...

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared HTTP client, or a short-lived one."""
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client
