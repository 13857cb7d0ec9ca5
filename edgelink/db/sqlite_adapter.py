"""
SQLite Database Adapter

This module implements the DatabaseAdapter interface for SQLite.
All SQLite-specific configuration and behavior is encapsulated here.

SQLite is a good fit for a single edge instance:
- File-based (single .db file), no server required
- Reads are cheap; writes are serialized by file locking, which the
  short-link workload (rare writes, frequent reads) tolerates well
"""

from typing import Any

from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool
from sqlalchemy.sql import Executable

from edgelink.db.interface import DatabaseAdapter


class SQLiteAdapter(DatabaseAdapter):
    """SQLite database adapter implementation."""

    def create_engine(self, database_url: str, **kwargs) -> AsyncEngine:
        """
        Create SQLite async engine.

        - NullPool: file-based database doesn't benefit from connection pooling
        - check_same_thread=False: required for aiosqlite
        """
        engine_kwargs = {"echo": False}
        engine_kwargs.update(kwargs)
        return create_async_engine(
            database_url,
            poolclass=self.get_pool_class(),
            connect_args=self.get_connect_args(),
            **engine_kwargs
        )

    def get_pool_class(self) -> type[NullPool]:
        return NullPool

    def get_connect_args(self) -> dict[str, Any]:
        return {"check_same_thread": False}

    def build_upsert(
        self,
        table: Any,
        values: dict[str, Any],
        index_elements: list[str],
        update_columns: list[str],
    ) -> Executable:
        """INSERT ... ON CONFLICT (...) DO UPDATE, supported since SQLite 3.24."""
        statement = sqlite_insert(table).values(**values)
        return statement.on_conflict_do_update(
            index_elements=index_elements,
            set_={column: statement.excluded[column] for column in update_columns},
        )

    def get_dialect_name(self) -> str:
        return "sqlite"


def get_database_adapter(database_url: str) -> DatabaseAdapter:
    """
    Factory function to get the database adapter for a connection string.

    Raises:
        ValueError: If no adapter exists for the URL's dialect
    """
    if database_url.startswith("sqlite"):
        return SQLiteAdapter()
    raise ValueError(f"No database adapter for {database_url.split(':', 1)[0]!r}")
