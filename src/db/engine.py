"""Async database engine and session factory."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


async def get_engine(
    database_url: str,
    pool_size: int = 5,
    pool_overflow: int = 10,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Args:
        database_url: PostgreSQL connection URL (postgresql+asyncpg://...).
        pool_size: Connection pool size.
        pool_overflow: Max overflow connections beyond pool_size.

    Returns:
        Configured async engine instance.
    """
    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=pool_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
    )
    return engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory shared by the queue processor, generators and ingestor.

    Those components open one short-lived session per unit of work (a claim,
    a dispatch record, a credential lookup) so concurrent dispatches never
    share a session.

    Args:
        engine: SQLAlchemy async engine.

    Returns:
        Async session factory with expire_on_commit=False.
    """
    return async_sessionmaker(engine, expire_on_commit=False)


async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create an async session from an engine.

    Args:
        engine: SQLAlchemy async engine.

    Yields:
        AsyncSession instance that is automatically closed on exit.
    """
    async with get_session_factory(engine)() as session:
        yield session
