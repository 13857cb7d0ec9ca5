"""
Storage module with abstraction layer.

This module provides:
- KeyValueStore interface: the contract link and telemetry services rely on
- SQLKeyValueStore / MemoryKeyValueStore: SQL-backed and process-local stores
- DatabaseAdapter / SQLiteAdapter: dialect-specific SQL configuration
- Engine and session construction for the SQL store
"""

from edgelink.db.interface import DatabaseAdapter, KeyValueStore
from edgelink.db.session import create_engine_and_sessions, init_models
from edgelink.db.store import MemoryKeyValueStore, SQLKeyValueStore

__all__ = [
    "DatabaseAdapter",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLKeyValueStore",
    "create_engine_and_sessions",
    "init_models",
]
