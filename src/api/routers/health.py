"""Health check endpoints for liveness and readiness probes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_redis_manager, get_settings
from src.api.schemas.common import HealthResponse, ServiceStatus
from src.cache.client import RedisManager
from src.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "0.1.0"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Liveness check endpoint (always returns 200 OK).

    Returns immediately without checking dependencies.
    """
    return HealthResponse(status="ok", version=API_VERSION)


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    redis_manager: Optional[RedisManager] = Depends(get_redis_manager),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """
    Readiness check endpoint with dependency health status.

    The database is required. Redis is reported but only degrades the
    status, and only when the shared dedup window is enabled (it is the
    Celery broker too, which this probe does not cover).

    Raises:
        HTTPException: 503 if the database is unavailable.
    """
    services: dict[str, ServiceStatus] = {}

    try:
        await db.execute(text("SELECT 1"))
        services["database"] = ServiceStatus(status="connected")
    except Exception as e:
        logger.warning("readiness_check: database=error, error=%s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database service unavailable",
        )

    overall = "ok"
    if redis_manager is not None:
        health = await redis_manager.health_check()
        if health["status"] == "ok":
            services["redis"] = ServiceStatus(status="connected")
        else:
            logger.warning("readiness_check: redis=%s", health["status"])
            services["redis"] = ServiceStatus(
                status="unavailable", error="Redis client not available"
            )
            if settings.feature_flags.enable_redis_dedup:
                overall = "degraded"

    logger.info("readiness_check: status=%s", overall)
    return HealthResponse(status=overall, version=API_VERSION, services=services)
