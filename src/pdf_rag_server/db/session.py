"""
Database Session Management

Provides the async SQLAlchemy engine, the session factory, and the
request-scoped session dependency used by the document and chat stores.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

from ..config import settings

logger = logging.getLogger("rag.db")


async_engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

# expire_on_commit=False keeps Document rows readable after the pipeline
# commits intermediate status changes
AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield one session per request.

    The session commits when the request handler returns normally and rolls
    back when it raises. Stores may commit earlier on their own (the
    ingestion pipeline does, so a ``failed`` status survives the rollback).
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Close all pooled connections. Called on application shutdown."""
    await async_engine.dispose()
    logger.info("Database engine disposed")


async def ping_database() -> None:
    """Run ``SELECT 1`` on a pooled connection; raises if the database is down."""
    async with async_engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
