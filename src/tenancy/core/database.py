"""Async SQLAlchemy setup for the shared tenants schema.

The tenants table lives in its own schema (SHARED_SCHEMA, "shared" by
default) so it can sit beside per-tenant application schemas in the same
database. Sessions are opened per repository call through
``get_shared_session``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import MetaData, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.tenancy.config import get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=10,
            max_overflow=10,
            pool_pre_ping=True,
            connect_args={"server_settings": {"application_name": "tenancy"}},
        )
    return _engine


shared_metadata = MetaData(schema=get_settings().SHARED_SCHEMA)


class SharedBase(DeclarativeBase):
    metadata = shared_metadata


async def get_shared_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one AsyncSession; objects stay readable after commit."""
    async with AsyncSession(get_engine(), expire_on_commit=False) as session:
        yield session


async def init_db() -> None:
    """Create the shared schema and tables when missing."""
    schema = shared_metadata.schema
    async with get_engine().begin() as conn:
        await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema}"'))
        await conn.run_sync(SharedBase.metadata.create_all)
    logger.info("Shared schema %s ready", schema)


async def close_db() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
