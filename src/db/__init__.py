"""Database base classes, mixins, and engine utilities."""

from src.db.base import Base, TimestampMixin, UUIDMixin, pg_enum
from src.db.engine import get_engine, get_session, get_session_factory

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "get_engine",
    "get_session",
    "get_session_factory",
    "pg_enum",
]
