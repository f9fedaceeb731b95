"""Request/response schemas for the automation trigger endpoints."""

from datetime import date, datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ProcessQueueRequest(BaseModel):
    """Optional tuning for one queue processor run."""

    batch_size: Optional[int] = Field(None, ge=1, le=500, description="Rows per iteration")
    owner_id: Optional[UUID] = Field(None, description="Only process this owner's messages")


class ProcessQueueResponse(BaseModel):
    processed: int
    failed: int
    remaining: int
    loops: int


class QueueStatusResponse(BaseModel):
    """Scheduled message counts by status."""

    total: int
    by_status: dict[str, int]
    timestamp: datetime


class ScheduledRunRequest(BaseModel):
    """Which daily scan to run.

    ``type`` is validated by the router so an unknown value yields a 400
    ``ErrorResponse`` instead of a 422.
    """

    type: str = Field(..., description="birthday.check | inactive_client.check | promotion.broadcast")


class ScheduledRunResponse(BaseModel):
    type: str
    date: date
    already_processed: bool = False
    automations: int = 0
    total_eligible: int = 0
    messages_queued: int = 0
    skipped_no_contact: int = 0
    promotions_found: int = 0


class ScheduledStatusResponse(BaseModel):
    date: date
    executions_today: int
    pending_messages: int
    last_check: datetime


class DatabaseEvent(BaseModel):
    """Row change notification from the database (INSERT/UPDATE)."""

    type: Literal["INSERT", "UPDATE", "DELETE"]
    table: str
    record: dict[str, Any]
    old_record: Optional[dict[str, Any]] = None


class DatabaseEventResponse(BaseModel):
    status: str = "ok"
    action: Optional[str] = Field(None, description="Background job enqueued for the event")
