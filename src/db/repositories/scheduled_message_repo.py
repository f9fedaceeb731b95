"""Scheduled message repository: the queue's eligibility, claim and outcome queries."""

from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID, uuid4

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from src.db.models.scheduled_message import (
    DISPATCHABLE_STATUSES,
    ScheduledMessageORM,
    ScheduledMessageStatusEnum,
)
from src.db.repositories.base import BaseRepository

# Retry budget shared with the partial due-index on scheduled_message.
MAX_RETRIES = 3


def eligible_clause(
    now: datetime,
    max_retries: int = MAX_RETRIES,
    owner_id: Optional[UUID] = None,
) -> ColumnElement[bool]:
    """Build the dispatch eligibility predicate.

    A message is eligible while its status is pending or failed, its retry
    count is below ``max_retries`` and its scheduled time has passed.
    """
    clauses = [
        ScheduledMessageORM.status.in_(DISPATCHABLE_STATUSES),
        ScheduledMessageORM.retry_count < max_retries,
        ScheduledMessageORM.scheduled_for <= now,
    ]
    if owner_id is not None:
        clauses.append(ScheduledMessageORM.owner_id == owner_id)
    return and_(*clauses)


class ScheduledMessageRepository(BaseRepository[ScheduledMessageORM]):
    """Repository for the outbound dispatch queue.

    All mutations flush only; callers own the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ScheduledMessageORM)

    async def fetch_eligible(
        self,
        now: datetime,
        limit: int,
        max_retries: int = MAX_RETRIES,
        owner_id: Optional[UUID] = None,
        exclude_ids: Optional[Iterable[UUID]] = None,
    ) -> list[ScheduledMessageORM]:
        """Select up to ``limit`` eligible messages, most urgent first.

        Ordered by (priority asc, scheduled_for asc).

        Args:
            now: Reference time for ``scheduled_for``.
            limit: Max rows to return.
            max_retries: Retry budget.
            owner_id: Optional owner filter.
            exclude_ids: Messages already attempted by the current run.
        """
        stmt = select(ScheduledMessageORM).where(eligible_clause(now, max_retries, owner_id))
        excluded = list(exclude_ids or [])
        if excluded:
            stmt = stmt.where(ScheduledMessageORM.id.not_in(excluded))
        stmt = stmt.order_by(
            ScheduledMessageORM.priority.asc(), ScheduledMessageORM.scheduled_for.asc()
        ).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def claim(
        self,
        ids: list[UUID],
        now: datetime,
        max_retries: int = MAX_RETRIES,
    ) -> tuple[UUID, set[UUID]]:
        """Atomically move still-eligible messages to ``processing``.

        The UPDATE re-checks eligibility, so a row another processor claimed
        (or finished) since it was selected is not returned.

        Args:
            ids: Candidate message ids.
            now: Claim time.
            max_retries: Retry budget.

        Returns:
            Tuple of (claim token, ids this call actually claimed).
        """
        token = uuid4()
        if not ids:
            return token, set()
        stmt = (
            update(ScheduledMessageORM)
            .where(ScheduledMessageORM.id.in_(ids), eligible_clause(now, max_retries))
            .values(
                status=ScheduledMessageStatusEnum.PROCESSING,
                claim_token=token,
                updated_at=now,
            )
            .returning(ScheduledMessageORM.id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return token, {row[0] for row in result.all()}

    async def mark_sent(
        self,
        message_id: UUID,
        provider_message_id: Optional[str],
        now: datetime,
    ) -> None:
        stmt = (
            update(ScheduledMessageORM)
            .where(ScheduledMessageORM.id == message_id)
            .values(
                status=ScheduledMessageStatusEnum.SENT,
                sent_at=now,
                provider_message_id=provider_message_id,
                last_error=None,
                claim_token=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def mark_failed(
        self,
        message_id: UUID,
        retry_count: int,
        error: str,
        now: datetime,
    ) -> None:
        """Return a message to ``failed`` with its (possibly incremented) retry count."""
        stmt = (
            update(ScheduledMessageORM)
            .where(ScheduledMessageORM.id == message_id)
            .values(
                status=ScheduledMessageStatusEnum.FAILED,
                retry_count=retry_count,
                last_error=error,
                claim_token=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def count_eligible(
        self,
        now: datetime,
        max_retries: int = MAX_RETRIES,
        owner_id: Optional[UUID] = None,
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(ScheduledMessageORM)
            .where(eligible_clause(now, max_retries, owner_id))
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def count_pending(self) -> int:
        stmt = (
            select(func.count())
            .select_from(ScheduledMessageORM)
            .where(ScheduledMessageORM.status == ScheduledMessageStatusEnum.PENDING)
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def status_counts(self) -> dict[str, int]:
        """Count messages grouped by status.

        Returns:
            Mapping of status value to row count (statuses with no rows are 0).
        """
        stmt = select(ScheduledMessageORM.status, func.count()).group_by(
            ScheduledMessageORM.status
        )
        result = await self._session.execute(stmt)
        counts = {status.value: 0 for status in ScheduledMessageStatusEnum}
        for status, count in result.all():
            key = status.value if isinstance(status, ScheduledMessageStatusEnum) else str(status)
            counts[key] = int(count)
        return counts

    async def queued_client_ids(
        self,
        automation_id: UUID,
        since: Optional[datetime] = None,
        metadata_match: Optional[dict[str, str]] = None,
    ) -> set[UUID]:
        """Clients that already hold a message from ``automation_id``.

        Args:
            automation_id: Automation that produced the messages.
            since: Only count messages created at or after this time.
            metadata_match: Metadata keys that must equal the given strings.

        Returns:
            Client ids, in any status.
        """
        stmt = select(ScheduledMessageORM.client_id).where(
            ScheduledMessageORM.automation_id == automation_id,
            ScheduledMessageORM.client_id.is_not(None),
        )
        if since is not None:
            stmt = stmt.where(ScheduledMessageORM.created_at >= since)
        for key, value in (metadata_match or {}).items():
            stmt = stmt.where(ScheduledMessageORM.metadata_json[key].astext == value)
        result = await self._session.execute(stmt.distinct())
        return set(result.scalars().all())
