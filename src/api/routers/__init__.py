"""FastAPI routers for the messaging automations API."""

from src.api.routers.automations import router as automations_router
from src.api.routers.health import router as health_router
from src.api.routers.webhooks import router as webhooks_router

__all__ = [
    "automations_router",
    "health_router",
    "webhooks_router",
]
