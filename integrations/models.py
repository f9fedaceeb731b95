"""Pydantic models shared by the platform senders and webhook parsers."""

import enum
from datetime import datetime, timezone
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

# Mirror database ENUMs as string literals
PlatformType = Literal["whatsapp", "instagram", "email"]
EmailProviderType = Literal["sendgrid", "mailgun", "ses"]


def _unwrap_enum(value: Any) -> Any:
    return value.value if isinstance(value, enum.Enum) else value


class SendResult(BaseModel):
    """Outcome of one dispatch attempt.

    Provider and configuration errors are reported here instead of raised.
    """

    success: bool
    provider_message_id: Optional[str] = Field(None, description="Id assigned by the provider")
    error: Optional[str] = Field(None, description="Human-readable failure reason")

    @classmethod
    def sent(cls, provider_message_id: Optional[str]) -> "SendResult":
        return cls(success=True, provider_message_id=provider_message_id)

    @classmethod
    def failed(cls, error: str) -> "SendResult":
        return cls(success=False, error=error)


class BotRef(BaseModel):
    """The bot a message is sent on behalf of."""

    id: UUID
    owner_id: UUID
    platform: PlatformType
    name: Optional[str] = None

    @field_validator("platform", mode="before")
    @classmethod
    def unwrap_platform(cls, value: Any) -> Any:
        return _unwrap_enum(value)


class OutboundMessage(BaseModel):
    """Snapshot of a queued message handed to a sender."""

    id: Optional[UUID] = None
    owner_id: UUID
    platform: PlatformType
    content: str
    subject: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    recipient_instagram_id: Optional[str] = None
    recipient_email: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("platform", mode="before")
    @classmethod
    def unwrap_platform(cls, value: Any) -> Any:
        return _unwrap_enum(value)

    @property
    def recipient(self) -> Optional[str]:
        """Contact handle for the message's platform."""
        if self.platform == "whatsapp":
            return self.recipient_phone
        if self.platform == "instagram":
            return self.recipient_instagram_id
        return self.recipient_email


class IntegrationCredentials(BaseModel):
    """Active credential bundle for one (owner, platform)."""

    owner_id: UUID
    platform: PlatformType
    config: dict[str, Any] = Field(default_factory=dict, description="Plaintext credentials")
    is_verified: bool = False

    @field_validator("platform", mode="before")
    @classmethod
    def unwrap_platform(cls, value: Any) -> Any:
        return _unwrap_enum(value)


class IncomingMessage(BaseModel):
    """Normalized inbound message parsed from a Meta webhook."""

    platform: PlatformType
    provider_message_id: str = Field(..., description="wamid / Instagram mid")
    sender_id: str = Field(..., description="Phone number or Instagram-scoped user id")
    recipient_id: str = Field(
        ..., description="WhatsApp phone_number_id or Instagram business account id"
    )
    text: str
    sender_name: Optional[str] = Field(None, description="Provider profile name, if sent")
    message_type: str = "text"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    raw_payload: dict[str, Any] = Field(default_factory=dict)
