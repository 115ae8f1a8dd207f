"""
Database engine, sessions and the per-transaction RLS caller.

Every request runs in one transaction: committed when the handler returns,
rolled back when it raises. Schema changes go through Alembic only.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import get_settings

log = structlog.get_logger()
settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=settings.db_pool_size,
    pool_pre_ping=True,
)

session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def set_rls_user(session: AsyncSession, user_id: uuid.UUID) -> None:
    """Expose the caller to RLS policies for the rest of the transaction."""
    await session.execute(
        text("SELECT set_config('app.current_user_id', :uid, true)"),
        {"uid": str(user_id)},
    )


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one transaction per request."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            log.debug("db.rollback")
            await session.rollback()
            raise


# Scripts and ARQ jobs run outside the request lifecycle
get_session_context = asynccontextmanager(get_session)
