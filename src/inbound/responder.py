"""HTTP client for the AI Responder service."""

import logging
from typing import Any, Optional
from uuid import UUID

import httpx

logger = logging.getLogger(__name__)


class ResponderClient:
    """Asks the Responder for a reply to an inbound message.

    The Responder is an external collaborator: ``POST {botId, message,
    conversationId, senderIdentity}`` returns ``{"response": "..."}``.
    Network and HTTP errors are logged and reported as no reply.

    Args:
        base_url: Responder base URL.
        path: Endpoint path.
        timeout: Request timeout in seconds.
        http_client: Optional shared client.
    """

    def __init__(
        self,
        base_url: str,
        path: str = "/api/chat/webhook",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/{path.lstrip('/')}"
        self._timeout = timeout
        self._http_client = http_client

    async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]) -> httpx.Response:
        return await client.post(self._url, json=body, timeout=self._timeout)

    async def reply(
        self,
        bot_id: UUID,
        message: str,
        conversation_id: UUID,
        sender_identity: dict[str, Any],
    ) -> Optional[str]:
        """Request a reply.

        Args:
            bot_id: Bot answering the conversation.
            message: Text of the inbound message.
            conversation_id: Conversation the message belongs to.
            sender_identity: Platform, counterparty id and display name.

        Returns:
            The reply text, or None when the Responder gave none.
        """
        body = {
            "botId": str(bot_id),
            "message": message,
            "conversationId": str(conversation_id),
            "senderIdentity": sender_identity,
        }
        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, body)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await self._post(client, body)
        except httpx.HTTPError as e:
            logger.warning(
                "responder_request_failed: conversation_id=%s, error=%s", conversation_id, e
            )
            return None

        if not response.is_success:
            logger.warning(
                "responder_error: conversation_id=%s, status=%d, body=%s",
                conversation_id,
                response.status_code,
                response.text[:200],
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("responder_invalid_json: conversation_id=%s", conversation_id)
            return None
        reply = data.get("response") if isinstance(data, dict) else None
        return reply or None
