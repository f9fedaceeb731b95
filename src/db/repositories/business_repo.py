"""Read repositories for dashboard-owned business data."""

import re
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, extract, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.business import (
    BotORM,
    BusinessORM,
    ClientORM,
    OrderORM,
    PlatformEnum,
    PromotionORM,
)
from src.db.repositories.base import BaseRepository


class BusinessRepository(BaseRepository[BusinessORM]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, BusinessORM)

    async def get_by_owner(self, owner_id: UUID) -> Optional[BusinessORM]:
        stmt = select(BusinessORM).where(BusinessORM.owner_id == owner_id).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class ClientRepository(BaseRepository[ClientORM]):
    """Client lookups used by the generators and conversation linking."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ClientORM)

    async def list_by_owner(self, owner_id: UUID) -> list[ClientORM]:
        stmt = (
            select(ClientORM)
            .where(ClientORM.owner_id == owner_id)
            .order_by(ClientORM.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_birthdays(self, owner_id: UUID, month: int, day: int) -> list[ClientORM]:
        """Clients of an owner whose birthday falls on the given month/day."""
        stmt = (
            select(ClientORM)
            .where(
                ClientORM.owner_id == owner_id,
                ClientORM.birthday.is_not(None),
                extract("month", ClientORM.birthday) == month,
                extract("day", ClientORM.birthday) == day,
            )
            .order_by(ClientORM.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_inactive(self, owner_id: UUID, cutoff: datetime) -> list[ClientORM]:
        """Clients with no interaction since ``cutoff``.

        A client that never interacted counts only if it was created before
        the cutoff, so newly added clients are not reported as inactive.
        """
        stmt = (
            select(ClientORM)
            .where(
                ClientORM.owner_id == owner_id,
                or_(
                    ClientORM.last_interaction_at < cutoff,
                    and_(
                        ClientORM.last_interaction_at.is_(None),
                        ClientORM.created_at < cutoff,
                    ),
                ),
            )
            .order_by(ClientORM.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_by_phones(self, owner_id: UUID, phones: list[str]) -> Optional[ClientORM]:
        """Return the first client of an owner whose phone is any of ``phones``.

        Stored phones are compared by their digits, so ``+54 9 261 123-4567``
        matches ``5492611234567``.
        """
        digits = sorted({re.sub(r"\D", "", phone) for phone in phones} - {""})
        if not digits:
            return None
        stored_digits = func.regexp_replace(ClientORM.phone, r"\D", "", "g")
        stmt = (
            select(ClientORM)
            .where(ClientORM.owner_id == owner_id, stored_digits.in_(digits))
            .order_by(ClientORM.created_at.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_instagram_id(
        self, owner_id: UUID, instagram_id: str
    ) -> Optional[ClientORM]:
        stmt = (
            select(ClientORM)
            .where(ClientORM.owner_id == owner_id, ClientORM.instagram_id == instagram_id)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class BotRepository(BaseRepository[BotORM]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, BotORM)

    async def get_for_platform(self, bot_id: UUID, platform: PlatformEnum) -> Optional[BotORM]:
        """Return the bot if it exists and is attached to ``platform``."""
        stmt = select(BotORM).where(BotORM.id == bot_id, BotORM.platform == platform)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_for_owner(
        self, owner_id: UUID, platform: PlatformEnum
    ) -> Optional[BotORM]:
        """Return the owner's oldest active bot on a platform."""
        stmt = (
            select(BotORM)
            .where(
                BotORM.owner_id == owner_id,
                BotORM.platform == platform,
                BotORM.is_active.is_(True),
            )
            .order_by(BotORM.created_at.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class PromotionRepository(BaseRepository[PromotionORM]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, PromotionORM)

    async def list_recent(self, since: datetime) -> list[PromotionORM]:
        """Active promotions created at or after ``since``."""
        stmt = (
            select(PromotionORM)
            .where(PromotionORM.is_active.is_(True), PromotionORM.created_at >= since)
            .order_by(PromotionORM.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class OrderRepository(BaseRepository[OrderORM]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, OrderORM)
