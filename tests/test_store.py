"""
Tests for the key-value store implementations.

The SQL store runs against a throwaway SQLite file through aiosqlite.
"""

import pytest

from edgelink.db.session import create_engine_and_sessions, init_models
from edgelink.db.sqlite_adapter import SQLiteAdapter, get_database_adapter
from edgelink.db.store import MemoryKeyValueStore, SQLKeyValueStore


class TestDatabaseAdapter:
    def test_sqlite_urls_get_the_sqlite_adapter(self):
        adapter = get_database_adapter("sqlite+aiosqlite:///./edgelink.db")
        assert isinstance(adapter, SQLiteAdapter)
        assert adapter.get_dialect_name() == "sqlite"

    def test_unknown_dialect(self):
        with pytest.raises(ValueError):
            get_database_adapter("oracle://db")


class TestSQLKeyValueStore:
    @pytest.mark.asyncio
    async def test_get_put_delete(self, tmp_path):
        engine, session_maker, adapter = create_engine_and_sessions(
            f"sqlite+aiosqlite:///{tmp_path / 'kv.db'}"
        )
        await init_models(engine)
        try:
            store = SQLKeyValueStore(session_maker, adapter, "SHORT_URLS")

            assert await store.get("code:amber-coral-nova") is None

            await store.put("code:amber-coral-nova", "https://pt-onia.app/#a")
            assert await store.get("code:amber-coral-nova") == "https://pt-onia.app/#a"

            # Second put for the same key is an upsert
            await store.put("code:amber-coral-nova", "https://pt-onia.app/#b")
            assert await store.get("code:amber-coral-nova") == "https://pt-onia.app/#b"

            await store.delete("code:amber-coral-nova")
            assert await store.get("code:amber-coral-nova") is None

            # Deleting a missing key is not an error
            await store.delete("code:amber-coral-nova")
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self, tmp_path):
        engine, session_maker, adapter = create_engine_and_sessions(
            f"sqlite+aiosqlite:///{tmp_path / 'kv.db'}"
        )
        await init_models(engine)
        try:
            links = SQLKeyValueStore(session_maker, adapter, "SHORT_URLS")
            telemetry = SQLKeyValueStore(session_maker, adapter, "TELEMETRY")

            await links.put("counters_v1", "links")
            await telemetry.put("counters_v1", "{}")

            assert await links.get("counters_v1") == "links"
            assert await telemetry.get("counters_v1") == "{}"
        finally:
            await engine.dispose()


class TestMemoryKeyValueStore:
    @pytest.mark.asyncio
    async def test_get_put_delete(self):
        store = MemoryKeyValueStore()
        await store.put("hash:abc", "amber-coral-nova")
        assert await store.get("hash:abc") == "amber-coral-nova"
        await store.delete("hash:abc")
        assert await store.get("hash:abc") is None
        assert store.snapshot() == {}

    @pytest.mark.asyncio
    async def test_key_length_is_bounded(self):
        store = MemoryKeyValueStore()
        with pytest.raises(ValueError):
            await store.put("k" * 513, "value")
        with pytest.raises(ValueError):
            await store.get("")
