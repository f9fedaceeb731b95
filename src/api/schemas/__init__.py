"""API request/response schemas."""

from src.api.schemas.automations import (
    DatabaseEvent,
    DatabaseEventResponse,
    ProcessQueueRequest,
    ProcessQueueResponse,
    QueueStatusResponse,
    ScheduledRunRequest,
    ScheduledRunResponse,
    ScheduledStatusResponse,
)
from src.api.schemas.common import AckResponse, ErrorResponse, HealthResponse, ServiceStatus

__all__ = [
    # Common
    "AckResponse",
    "ErrorResponse",
    "HealthResponse",
    "ServiceStatus",
    # Automations
    "DatabaseEvent",
    "DatabaseEventResponse",
    "ProcessQueueRequest",
    "ProcessQueueResponse",
    "QueueStatusResponse",
    "ScheduledRunRequest",
    "ScheduledRunResponse",
    "ScheduledStatusResponse",
]
