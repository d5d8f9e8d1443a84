"""Async engine and session factory shared by every bounded context.

Transactions use PostgreSQL's default READ COMMITTED isolation. Per-order
serialisation is done with the `orders.version` optimistic check, so a
fresh SELECT after a conflict always sees the winner's committed row.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from config.settings import settings


class Base(DeclarativeBase):
    """Declarative base for the few ORM-mapped tables (staff users)."""

    pass


engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=10,
    max_overflow=10,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, closed afterwards.

    Application services own commit/rollback; the session is never
    committed implicitly here.
    """
    async with async_session_factory() as session:
        yield session
