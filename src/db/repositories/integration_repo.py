"""Integration repository: per-owner platform credentials."""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.business import PlatformEnum
from src.db.models.integration import IntegrationORM
from src.db.repositories.base import BaseRepository

# Config key holding the provider-side account id that webhooks are addressed to.
ACCOUNT_ID_KEYS: dict[PlatformEnum, str] = {
    PlatformEnum.WHATSAPP: "phone_number_id",
    PlatformEnum.INSTAGRAM: "instagram_business_account_id",
}


class IntegrationRepository(BaseRepository[IntegrationORM]):
    """Repository for Integration rows.

    WARNING: ``config`` holds plaintext credentials; never log it.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, IntegrationORM)

    async def get_active(
        self, owner_id: UUID, platform: PlatformEnum
    ) -> Optional[IntegrationORM]:
        """Return the owner's active integration for a platform, if any."""
        stmt = select(IntegrationORM).where(
            IntegrationORM.owner_id == owner_id,
            IntegrationORM.platform == platform,
            IntegrationORM.is_active.is_(True),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_account(
        self, platform: PlatformEnum, account_id: str
    ) -> Optional[IntegrationORM]:
        """Resolve the active integration a webhook event was addressed to.

        Args:
            platform: whatsapp or instagram.
            account_id: WhatsApp phone_number_id or Instagram business account id.

        Returns:
            Matching active integration, or None.
        """
        key = ACCOUNT_ID_KEYS.get(platform)
        if key is None:
            return None
        stmt = (
            select(IntegrationORM)
            .where(
                IntegrationORM.platform == platform,
                IntegrationORM.is_active.is_(True),
                IntegrationORM.config[key].astext == account_id,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
