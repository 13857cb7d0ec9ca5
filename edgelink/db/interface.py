"""
Storage Abstraction Interfaces

Two seams keep the rest of the codebase independent of where data lives:

- KeyValueStore: the async get/put/delete contract the link and telemetry
  services are written against
- DatabaseAdapter: dialect-specific engine setup and upsert construction for
  the SQL-backed store

To add a new database backend:
1. Create a new class inheriting from DatabaseAdapter
2. Implement all abstract methods
3. Return it from get_database_adapter() in sqlite_adapter.py
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import Pool
from sqlalchemy.sql import Executable


class KeyValueStore(ABC):
    """
    Minimal asynchronous key-value contract.

    Implementations may raise on transient failures; callers wrap operations
    in a bounded retry (see services/retry.py).
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Insert or overwrite a value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key; deleting an absent key is not an error."""


class DatabaseAdapter(ABC):
    """
    Abstract base class for SQL database adapters.

    Holds everything that differs between SQL dialects so that
    SQLKeyValueStore stays dialect-agnostic.
    """

    @abstractmethod
    def create_engine(self, database_url: str, **kwargs) -> AsyncEngine:
        """Create and configure the async engine."""

    @abstractmethod
    def get_pool_class(self) -> Optional[type[Pool]]:
        """Connection pool class for this database, or None for the default."""

    @abstractmethod
    def get_connect_args(self) -> dict[str, Any]:
        """Driver connection arguments."""

    @abstractmethod
    def build_upsert(
        self,
        table: Any,
        values: dict[str, Any],
        index_elements: list[str],
        update_columns: list[str],
    ) -> Executable:
        """
        Build an INSERT that overwrites the listed columns on key conflict.

        Args:
            table: SQLAlchemy table to write into
            values: Column values for the new row
            index_elements: Columns of the conflicting unique key
            update_columns: Columns overwritten when the row exists
        """

    @abstractmethod
    def get_dialect_name(self) -> str:
        """SQLAlchemy dialect name (e.g., 'sqlite')."""
