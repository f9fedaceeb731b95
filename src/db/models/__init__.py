"""ORM models for database tables."""

from src.db.models.automation import (
    AutomationExecutionORM,
    AutomationLogORM,
    AutomationLogTypeEnum,
    ExecutionStatusEnum,
)
from src.db.models.business import (
    AutomationORM,
    BotORM,
    BusinessORM,
    ClientORM,
    MessageTypeEnum,
    OrderORM,
    PlatformEnum,
    PromotionORM,
    TriggerTypeEnum,
)
from src.db.models.conversation import (
    ConversationORM,
    ConversationStatusEnum,
    MessageORM,
    SenderTypeEnum,
)
from src.db.models.integration import IntegrationORM
from src.db.models.scheduled_message import (
    DISPATCHABLE_STATUSES,
    ScheduledMessageORM,
    ScheduledMessageStatusEnum,
)
from src.db.models.tracking import NotificationKindEnum, NotificationORM, UsageLogORM

__all__ = [
    "AutomationExecutionORM",
    "AutomationLogORM",
    "AutomationLogTypeEnum",
    "AutomationORM",
    "BotORM",
    "BusinessORM",
    "ClientORM",
    "ConversationORM",
    "ConversationStatusEnum",
    "DISPATCHABLE_STATUSES",
    "ExecutionStatusEnum",
    "IntegrationORM",
    "MessageORM",
    "MessageTypeEnum",
    "NotificationKindEnum",
    "NotificationORM",
    "OrderORM",
    "PlatformEnum",
    "PromotionORM",
    "ScheduledMessageORM",
    "ScheduledMessageStatusEnum",
    "SenderTypeEnum",
    "TriggerTypeEnum",
    "UsageLogORM",
]
