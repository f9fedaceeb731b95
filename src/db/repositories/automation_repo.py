"""Repositories for automations, their daily execution guard and the audit log."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.automation import (
    AutomationExecutionORM,
    AutomationLogORM,
    ExecutionStatusEnum,
)
from src.db.models.business import AutomationORM, BotORM, TriggerTypeEnum
from src.db.repositories.base import BaseRepository


class AutomationRepository(BaseRepository[AutomationORM]):
    """Read access to owner-configured automations."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, AutomationORM)

    async def list_active(
        self,
        trigger_type: TriggerTypeEnum,
        owner_id: Optional[UUID] = None,
    ) -> list[tuple[AutomationORM, BotORM]]:
        """List active automations of a trigger type together with their bot.

        Automations whose bot is inactive are excluded.

        Args:
            trigger_type: Trigger category to match.
            owner_id: Optional owner filter (event-driven triggers).

        Returns:
            List of (automation, bot) tuples.
        """
        stmt = (
            select(AutomationORM, BotORM)
            .join(BotORM, BotORM.id == AutomationORM.bot_id)
            .where(
                AutomationORM.trigger_type == trigger_type,
                AutomationORM.is_active.is_(True),
                BotORM.is_active.is_(True),
            )
            .order_by(AutomationORM.created_at.asc())
        )
        if owner_id is not None:
            stmt = stmt.where(AutomationORM.owner_id == owner_id)
        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]


class AutomationExecutionRepository(BaseRepository[AutomationExecutionORM]):
    """Repository for the once-per-day execution guard of recurring triggers."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, AutomationExecutionORM)

    async def get_completed(
        self, automation_type: str, execution_date: date
    ) -> Optional[AutomationExecutionORM]:
        """Return the completed execution for (type, date), if any."""
        stmt = (
            select(AutomationExecutionORM)
            .where(
                AutomationExecutionORM.automation_type == automation_type,
                AutomationExecutionORM.execution_date == execution_date,
                AutomationExecutionORM.status == ExecutionStatusEnum.COMPLETED,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def start(self, automation_type: str, execution_date: date) -> AutomationExecutionORM:
        return await self.create(
            automation_type=automation_type,
            execution_date=execution_date,
            status=ExecutionStatusEnum.PROCESSING,
        )

    async def complete(
        self,
        execution: AutomationExecutionORM,
        now: datetime,
        total_eligible: int,
        messages_queued: int,
        skipped_no_contact: int = 0,
    ) -> AutomationExecutionORM:
        execution.status = ExecutionStatusEnum.COMPLETED
        execution.total_eligible = total_eligible
        execution.messages_queued = messages_queued
        execution.skipped_no_contact = skipped_no_contact
        execution.completed_at = now
        await self._session.flush()
        return execution

    async def fail(self, execution: AutomationExecutionORM, now: datetime) -> None:
        execution.status = ExecutionStatusEnum.FAILED
        execution.completed_at = now
        await self._session.flush()

    async def count_for_date(self, execution_date: date) -> int:
        stmt = (
            select(func.count())
            .select_from(AutomationExecutionORM)
            .where(AutomationExecutionORM.execution_date == execution_date)
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class AutomationLogRepository(BaseRepository[AutomationLogORM]):
    """Append-only audit log of queue events."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, AutomationLogORM)
