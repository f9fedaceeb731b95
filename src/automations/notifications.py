"""Owner-facing notifications (fire-and-forget)."""

import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.models.tracking import NotificationKindEnum, NotificationORM

logger = logging.getLogger(__name__)


class NotificationService:
    """Writes notification rows in their own session.

    A failed insert is logged and reported as False; it never propagates,
    so notifications cannot break dispatch or generation.

    Args:
        session_factory: Factory for the notification's own session.
        enabled: When False, ``notify`` is a no-op.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        enabled: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self._enabled = enabled

    async def notify(
        self,
        owner_id: UUID,
        title: str,
        message: str,
        kind: NotificationKindEnum = NotificationKindEnum.INFO,
        link: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Create one notification.

        Returns:
            True if the row was committed.
        """
        if not self._enabled:
            return False
        try:
            async with self._session_factory() as session:
                session.add(
                    NotificationORM(
                        owner_id=owner_id,
                        title=title,
                        message=message,
                        kind=kind,
                        link=link,
                        metadata_json=metadata or {},
                    )
                )
                await session.commit()
            return True
        except Exception:
            logger.exception("notification_failed: owner_id=%s, title=%s", owner_id, title)
            return False
