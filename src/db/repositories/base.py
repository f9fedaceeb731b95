"""Shared repository plumbing: lookup by id and flush-only inserts."""

from typing import Any, Generic, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Base class for the per-table repositories.

    Repositories never commit. Writes are flushed so generated ids and
    server defaults are visible, and the unit of work (a queue batch, a
    generator run, one inbound message) decides when to commit.

    Args:
        session: AsyncSession for database operations.
        model_class: The ORM model class this repository manages.
    """

    def __init__(self, session: AsyncSession, model_class: Type[T]) -> None:
        self._session = session
        self._model_class = model_class

    async def get_by_id(self, id: UUID) -> Optional[T]:
        """Get a single record by primary key, or None."""
        return await self._session.get(self._model_class, id)

    async def create(self, **kwargs: Any) -> T:
        """Insert one record and refresh it so server defaults are loaded.

        Args:
            **kwargs: Column values for the new record.

        Returns:
            The created record.
        """
        instance = self._model_class(**kwargs)
        self._session.add(instance)
        await self._session.flush()
        await self._session.refresh(instance)
        return instance

    async def bulk_create(self, rows: list[dict[str, Any]]) -> list[T]:
        """Insert a batch of records in a single flush.

        No refresh is issued per row; ids are assigned client-side by the
        UUID mixin.

        Args:
            rows: Column values per record.

        Returns:
            The created ORM instances in input order.
        """
        instances = [self._model_class(**row) for row in rows]
        self._session.add_all(instances)
        await self._session.flush()
        return instances
