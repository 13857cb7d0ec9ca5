"""
Database Models for the Key-Value Store

Both stores the edge handler needs (links and telemetry) are plain
key-value namespaces, so a single table backs them:

- KeyValueEntry: one row per (namespace, key)

Design Decisions:
- Composite primary key (namespace, key): lookups are always exact-match
- key is bounded at 512 characters; long URLs are never used as keys directly,
  the reverse index stores their digest instead
- value is Text: a link target or the serialized telemetry aggregate
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text
from sqlmodel import Column, Field, SQLModel

MAX_KEY_LENGTH = 512


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueEntry(SQLModel, table=True):
    """
    A single key-value pair inside a namespace.

    Fields:
    - namespace: Store binding name (e.g. SHORT_URLS, TELEMETRY)
    - key: Entry key (e.g. code:amber-coral-nova, hash:<sha256>, counters_v1)
    - value: Stored string
    - updated_at: Last write time, for operators inspecting the table
    """
    __tablename__ = "kv_entries"

    namespace: str = Field(sa_column=Column(String(64), primary_key=True))
    key: str = Field(sa_column=Column(String(MAX_KEY_LENGTH), primary_key=True))
    value: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
