"""Instagram Messaging API sender."""

import logging
from typing import Any, Optional

import httpx

from integrations.base import PlatformSender, graph_error
from integrations.models import BotRef, OutboundMessage, PlatformType, SendResult

logger = logging.getLogger(__name__)

INSTAGRAM_GRAPH_BASE = "https://graph.instagram.com/v21.0"
FACEBOOK_GRAPH_BASE = "https://graph.facebook.com/v18.0"


def _message_id(response: httpx.Response) -> Optional[str]:
    if not response.is_success:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("message_id") if isinstance(body, dict) else None


async def fetch_instagram_username(
    client: httpx.AsyncClient,
    access_token: str,
    instagram_user_id: str,
) -> Optional[str]:
    """Look up the public username of an Instagram-scoped user id.

    Returns:
        The username without ``@``, or None when the lookup fails.
    """
    try:
        response = await client.get(
            f"{INSTAGRAM_GRAPH_BASE}/{instagram_user_id}",
            params={"fields": "username", "access_token": access_token},
        )
    except httpx.HTTPError as e:
        logger.warning("instagram_username_lookup_failed: user_id=%s, error=%s", instagram_user_id, e)
        return None
    if not response.is_success:
        logger.warning(
            "instagram_username_lookup_failed: user_id=%s, status=%d",
            instagram_user_id,
            response.status_code,
        )
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("username") if isinstance(body, dict) else None


class InstagramSender(PlatformSender):
    """Instagram Messaging API sender.

    Sends through the Instagram Graph API first and, on any failure, retries
    once against the Facebook Graph endpoint of the business account.

    Credentials required in the integration config:
        access_token: Instagram user access token.
        instagram_business_account_id: Needed for the Facebook Graph fallback.
    """

    platform: PlatformType = "instagram"

    async def _send(self, message: OutboundMessage, bot: BotRef) -> SendResult:
        credentials = await self._integrations.load(message.owner_id, "instagram")
        if credentials is None:
            return SendResult.failed("Instagram integration not found or inactive")

        access_token = credentials.config.get("access_token")
        account_id = credentials.config.get("instagram_business_account_id")
        if not access_token:
            return SendResult.failed("Instagram integration is missing access_token")
        if not message.recipient_instagram_id:
            return SendResult.failed("Recipient has no Instagram id")

        payload: dict[str, Any] = {
            "recipient": {"id": message.recipient_instagram_id},
            "message": {"text": message.content},
        }
        headers = {"Authorization": f"Bearer {access_token}"}

        async with self._http() as client:
            try:
                response = await client.post(
                    f"{INSTAGRAM_GRAPH_BASE}/me/messages", json=payload, headers=headers
                )
                provider_id = _message_id(response)
                if provider_id:
                    return SendResult.sent(provider_id)
                primary_error = graph_error(response, "Instagram")
            except httpx.HTTPError as e:
                primary_error = f"Instagram API request failed: {str(e) or type(e).__name__}"

            logger.warning(
                "instagram_primary_failed: message_id=%s, bot_id=%s, error=%s",
                message.id,
                bot.id,
                primary_error,
            )
            if not account_id:
                return SendResult.failed(primary_error)

            fallback = await client.post(
                f"{FACEBOOK_GRAPH_BASE}/{account_id}/messages", json=payload, headers=headers
            )
            provider_id = _message_id(fallback)
            if provider_id:
                return SendResult.sent(provider_id)
            return SendResult.failed(
                f"{primary_error}; fallback: {graph_error(fallback, 'Facebook Graph')}"
            )
