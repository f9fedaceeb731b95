"""Webhook endpoints for Meta platforms (WhatsApp Cloud API, Instagram Messaging)."""

import json
import logging
from typing import Any, Callable, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from integrations import parse_instagram_webhook, parse_whatsapp_webhook, validate_meta_signature
from integrations.models import IncomingMessage
from src.api.dependencies import get_db, get_settings
from src.api.schemas.common import AckResponse
from src.db.models.business import PlatformEnum
from src.db.repositories.business_repo import BotRepository
from src.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])

PARSERS: dict[PlatformEnum, Callable[[dict[str, Any]], list[IncomingMessage]]] = {
    PlatformEnum.WHATSAPP: parse_whatsapp_webhook,
    PlatformEnum.INSTAGRAM: parse_instagram_webhook,
}


def _check_webhooks_enabled(settings: Settings) -> None:
    """Check if the inbound webhooks feature flag is enabled.

    Raises:
        HTTPException: 404 if inbound webhooks are disabled.
    """
    if not settings.feature_flags.enable_inbound_webhooks:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Inbound webhooks are not enabled",
        )


async def _verify(
    platform: PlatformEnum,
    mode: Optional[str],
    token: Optional[str],
    challenge: Optional[str],
    db: AsyncSession,
) -> PlainTextResponse:
    """Answer Meta's subscription handshake.

    The verify token is the id of the bot that owns the webhook.
    """
    if mode != "subscribe":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported hub.mode",
        )

    try:
        bot_id = UUID(token or "")
    except ValueError:
        bot_id = None
    bot = await BotRepository(db).get_for_platform(bot_id, platform) if bot_id else None
    if bot is None:
        logger.warning("webhook_verification_failed: platform=%s", platform.value)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Verification token mismatch",
        )

    logger.info("webhook_verified: platform=%s, bot_id=%s", platform.value, bot.id)
    return PlainTextResponse(challenge or "")


async def _receive(platform: PlatformEnum, request: Request, settings: Settings) -> AckResponse:
    """Validate, parse and hand each inbound message to a Celery task.

    Returns 200 once the payload is parsed so Meta does not redeliver.

    Raises:
        HTTPException: 401 on a bad signature, 400 on a malformed body.
    """
    body = await request.body()

    if settings.meta_app_secret and not validate_meta_signature(
        settings.meta_app_secret,
        body,
        request.headers.get("X-Hub-Signature-256"),
    ):
        logger.warning("webhook_signature_invalid: platform=%s", platform.value)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-Hub-Signature-256",
        )

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload",
        )
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload",
        )

    messages = PARSERS[platform](payload)

    from workers.tasks.inbound_tasks import handle_inbound_message

    dispatched = 0
    for message in messages:
        try:
            handle_inbound_message.delay(message=message.model_dump(mode="json"))
            dispatched += 1
        except Exception as exc:
            logger.error(
                "webhook_dispatch_failed: platform=%s, provider_message_id=%s, error=%s",
                platform.value,
                message.provider_message_id,
                str(exc),
            )

    logger.info(
        "webhook_received: platform=%s, messages=%s, dispatched=%s",
        platform.value,
        len(messages),
        dispatched,
    )
    return AckResponse(received=len(messages))


@router.get("/whatsapp", response_class=PlainTextResponse)
async def whatsapp_verify(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> PlainTextResponse:
    """Handle the WhatsApp webhook verification handshake."""
    _check_webhooks_enabled(settings)
    return await _verify(PlatformEnum.WHATSAPP, mode, token, challenge, db)


@router.post("/whatsapp", response_model=AckResponse)
async def whatsapp_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> AckResponse:
    """Handle incoming WhatsApp Cloud API events."""
    _check_webhooks_enabled(settings)
    return await _receive(PlatformEnum.WHATSAPP, request, settings)


@router.get("/instagram", response_class=PlainTextResponse)
async def instagram_verify(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> PlainTextResponse:
    """Handle the Instagram webhook verification handshake."""
    _check_webhooks_enabled(settings)
    return await _verify(PlatformEnum.INSTAGRAM, mode, token, challenge, db)


@router.post("/instagram", response_model=AckResponse)
async def instagram_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> AckResponse:
    """Handle incoming Instagram Messaging events."""
    _check_webhooks_enabled(settings)
    return await _receive(PlatformEnum.INSTAGRAM, request, settings)
