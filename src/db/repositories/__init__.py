"""Repository layer for database access."""

from src.db.repositories.automation_repo import (
    AutomationExecutionRepository,
    AutomationLogRepository,
    AutomationRepository,
)
from src.db.repositories.base import BaseRepository
from src.db.repositories.business_repo import (
    BotRepository,
    BusinessRepository,
    ClientRepository,
    OrderRepository,
    PromotionRepository,
)
from src.db.repositories.conversation_repo import ConversationRepository, MessageRepository
from src.db.repositories.integration_repo import IntegrationRepository
from src.db.repositories.scheduled_message_repo import (
    MAX_RETRIES,
    ScheduledMessageRepository,
    eligible_clause,
)

__all__ = [
    "AutomationExecutionRepository",
    "AutomationLogRepository",
    "AutomationRepository",
    "BaseRepository",
    "BotRepository",
    "BusinessRepository",
    "ClientRepository",
    "ConversationRepository",
    "IntegrationRepository",
    "MAX_RETRIES",
    "MessageRepository",
    "OrderRepository",
    "PromotionRepository",
    "ScheduledMessageRepository",
    "eligible_clause",
]
