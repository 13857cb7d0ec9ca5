"""
Key-Value Store Implementations

- SQLKeyValueStore: rows of the kv_entries table, scoped to one namespace
- MemoryKeyValueStore: a process-local dict, for development and tests

Each SQL operation opens its own short-lived session: store calls are
independent writes, never one transaction spanning several keys.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from edgelink.db.interface import DatabaseAdapter, KeyValueStore
from edgelink.db.models import MAX_KEY_LENGTH, KeyValueEntry


def _check_key(key: str) -> None:
    if not key or len(key) > MAX_KEY_LENGTH:
        raise ValueError(f"Store keys must be 1-{MAX_KEY_LENGTH} characters")


class SQLKeyValueStore(KeyValueStore):
    """Key-value namespace stored in the kv_entries table."""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        adapter: DatabaseAdapter,
        namespace: str,
    ):
        self.session_maker = session_maker
        self.adapter = adapter
        self.namespace = namespace

    async def get(self, key: str) -> Optional[str]:
        _check_key(key)
        statement = select(KeyValueEntry.value).where(
            KeyValueEntry.namespace == self.namespace,
            KeyValueEntry.key == key,
        )
        async with self.session_maker() as session:
            result = await session.execute(statement)
            return result.scalar_one_or_none()

    async def put(self, key: str, value: str) -> None:
        _check_key(key)
        statement = self.adapter.build_upsert(
            KeyValueEntry.__table__,
            values={
                "namespace": self.namespace,
                "key": key,
                "value": value,
                "updated_at": datetime.now(timezone.utc),
            },
            index_elements=["namespace", "key"],
            update_columns=["value", "updated_at"],
        )
        async with self.session_maker() as session:
            await session.execute(statement)
            await session.commit()

    async def delete(self, key: str) -> None:
        _check_key(key)
        statement = delete(KeyValueEntry).where(
            KeyValueEntry.namespace == self.namespace,
            KeyValueEntry.key == key,
        )
        async with self.session_maker() as session:
            await session.execute(statement)
            await session.commit()


class MemoryKeyValueStore(KeyValueStore):
    """Process-local key-value store; contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        _check_key(key)
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        _check_key(key)
        self._data[key] = value

    async def delete(self, key: str) -> None:
        _check_key(key)
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)
