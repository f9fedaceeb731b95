"""SQLAlchemy declarative base, common mixins and enum column helper."""

import enum
from datetime import datetime
from typing import Type
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Enum, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all ORM models.

    All ORM models in this project inherit from this base class.
    """

    pass


class UUIDMixin:
    """Mixin providing a UUID primary key.

    Adds an ``id`` column as a UUID primary key with auto-generated uuid4 default.
    """

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)


class TimestampMixin:
    """Mixin providing created_at and updated_at timestamps.

    Both default to the database server's current time. ``updated_at`` also
    refreshes on every row update via ``onupdate``; code that needs the value
    of ``updated_at`` to be meaningful (the queue's retry policy does) sets it
    explicitly instead of relying on the server clock.
    """

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


def _enum_values(enum_class: Type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_class]


def pg_enum(enum_class: Type[enum.Enum], name: str) -> Enum:
    """Build a native PostgreSQL enum column type that stores member values.

    Args:
        enum_class: ``str``-based Python enum.
        name: PostgreSQL type name (created by the migrations, not by metadata).

    Returns:
        SQLAlchemy Enum type.
    """
    return Enum(
        enum_class,
        name=name,
        native_enum=True,
        create_constraint=False,
        values_callable=_enum_values,
    )
