"""Credential loading for the platform senders."""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from integrations.models import IntegrationCredentials, PlatformType


class IntegrationLoader(ABC):
    """Looks up the active credentials a sender needs."""

    @abstractmethod
    async def load(
        self, owner_id: UUID, platform: PlatformType
    ) -> Optional[IntegrationCredentials]:
        """Return the owner's active credentials for ``platform``, or None."""


class DatabaseIntegrationLoader(IntegrationLoader):
    """Reads Integration rows, one short-lived session per lookup.

    Concurrent dispatches each call ``load`` and so never share a session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load(
        self, owner_id: UUID, platform: PlatformType
    ) -> Optional[IntegrationCredentials]:
        from src.db.models.business import PlatformEnum
        from src.db.repositories.integration_repo import IntegrationRepository

        async with self._session_factory() as session:
            row = await IntegrationRepository(session).get_active(owner_id, PlatformEnum(platform))
            if row is None:
                return None
            return IntegrationCredentials(
                owner_id=row.owner_id,
                platform=row.platform,
                config=dict(row.config or {}),
                is_verified=row.is_verified,
            )
