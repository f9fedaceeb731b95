"""Outbound automations: trigger generators, templating and the dispatch queue."""

from src.automations.generators import (
    BirthdayGenerator,
    DailyScanGenerator,
    GeneratorSummary,
    InactiveClientGenerator,
    OrderConfirmationGenerator,
    PromotionBroadcaster,
    PromotionScan,
    WelcomeGenerator,
)
from src.automations.notifications import NotificationService
from src.automations.queue_processor import ProcessQueueResult, QueueProcessor, next_retry_count
from src.automations.templating import build_template_metadata, build_variables, render_template

__all__ = [
    "BirthdayGenerator",
    "DailyScanGenerator",
    "GeneratorSummary",
    "InactiveClientGenerator",
    "NotificationService",
    "OrderConfirmationGenerator",
    "ProcessQueueResult",
    "PromotionBroadcaster",
    "PromotionScan",
    "QueueProcessor",
    "WelcomeGenerator",
    "build_template_metadata",
    "build_variables",
    "next_retry_count",
    "render_template",
]
