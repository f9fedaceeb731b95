"""Fixtures exposing the registered ORM metadata."""

import pytest
from sqlalchemy import Table

from src.db.base import Base

# Importing the package registers every model on Base.metadata
import src.db.models  # noqa: F401


@pytest.fixture
def tables() -> dict[str, Table]:
    """Registered tables keyed by name."""
    return dict(Base.metadata.tables)


@pytest.fixture
def owner_scoped_tables(tables: dict[str, Table]) -> set[str]:
    """Names of the tables partitioned per business owner (``owner_id`` column)."""
    return {name for name, table in tables.items() if "owner_id" in table.columns}
