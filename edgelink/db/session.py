"""
Database Engine and Session Management

This module builds the async engine and session factory for the SQL-backed
key-value store. Uses the database adapter layer so the dialect-specific
parts (pool class, connect args, upsert) stay in one place.

Engines are created at application startup rather than at import time,
so tests and tools can point the store at any database URL.
"""

from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from edgelink.db import models  # noqa: F401  (registers the table on SQLModel.metadata)
from edgelink.db.interface import DatabaseAdapter
from edgelink.db.sqlite_adapter import get_database_adapter


def create_engine_and_sessions(
    database_url: str,
) -> Tuple[AsyncEngine, async_sessionmaker, DatabaseAdapter]:
    """
    Create the engine, a session factory bound to it, and the adapter used.

    Args:
        database_url: Async SQLAlchemy connection string

    Returns:
        (engine, session factory, adapter)
    """
    adapter = get_database_adapter(database_url)
    engine = adapter.create_engine(database_url)
    session_maker = async_sessionmaker(
        engine,
        class_=SQLModelAsyncSession,
        expire_on_commit=False,  # Prevents SQLAlchemy from expiring objects after commit
        autoflush=False,
    )
    return engine, session_maker, adapter


async def init_models(engine: AsyncEngine) -> None:
    """
    Create missing tables.

    Production deployments run Alembic migrations instead; this keeps local
    development and tests free of a migration step.
    """
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
