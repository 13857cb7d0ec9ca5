"""
Edge Cache Layer

Caches redirect responses for canonical short paths
(<APP_ORIGIN>/s/<code>) so repeat API-style lookups skip the store.

Implementations:
- MemoryResponseCache: per-instance dict with TTLs (default)
- RedisResponseCache: shared cache for deployments running several instances

Entries are explicitly deleted when a code is repointed; otherwise they
expire after their TTL.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import redis.asyncio as redis
from starlette.responses import Response

logger = logging.getLogger(__name__)


@dataclass
class CachedResponse:
    """Serializable snapshot of a response."""
    status_code: int
    headers: List[Tuple[str, str]]
    body: bytes

    @classmethod
    def from_response(cls, response: Response) -> "CachedResponse":
        return cls(
            status_code=response.status_code,
            headers=[
                (name.decode("latin-1"), value.decode("latin-1"))
                for name, value in response.raw_headers
            ],
            body=bytes(response.body),
        )

    def to_response(self) -> Response:
        response = Response(content=self.body, status_code=self.status_code)
        response.raw_headers = [
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, value in self.headers
        ]
        return response

    def dumps(self) -> str:
        return json.dumps({
            "status_code": self.status_code,
            "headers": self.headers,
            "body": self.body.decode("latin-1"),
        })

    @classmethod
    def loads(cls, raw: str) -> "CachedResponse":
        data = json.loads(raw)
        return cls(
            status_code=data["status_code"],
            headers=[tuple(pair) for pair in data["headers"]],
            body=data["body"].encode("latin-1"),
        )


class ResponseCache(ABC):
    """Response cache keyed by canonical request URL."""

    @abstractmethod
    async def match(self, key: str) -> Optional[Response]:
        """Return a fresh copy of the cached response, or None."""

    @abstractmethod
    async def put(self, key: str, response: Response, ttl: int) -> None:
        """Store a response for ttl seconds."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Evict a key; True if something was removed."""

    async def close(self) -> None:
        """Release any connection held by the cache."""


class MemoryResponseCache(ResponseCache):
    """In-process cache; each running instance keeps its own entries."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 10_000):
        self._clock = clock
        self._max_entries = max_entries
        self._entries: Dict[str, Tuple[float, CachedResponse]] = {}

    async def match(self, key: str) -> Optional[Response]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, cached = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return cached.to_response()

    async def put(self, key: str, response: Response, ttl: int) -> None:
        if len(self._entries) >= self._max_entries:
            self._evict_expired()
        self._entries[key] = (self._clock() + ttl, CachedResponse.from_response(response))

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def _evict_expired(self) -> None:
        now = self._clock()
        for key in [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]:
            del self._entries[key]
        # Still full: drop the oldest insertions
        while len(self._entries) >= self._max_entries:
            self._entries.pop(next(iter(self._entries)))

    def __len__(self) -> int:
        return len(self._entries)


class RedisResponseCache(ResponseCache):
    """Redis-backed cache shared by every instance pointed at the same server."""

    def __init__(self, client, prefix: str = "edgelink:edge:"):
        """
        Args:
            client: redis.asyncio client created with decode_responses=True
            prefix: Namespace prepended to every cache key
        """
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisResponseCache":
        client = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        logger.info("Redis edge cache enabled")
        return cls(client)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def match(self, key: str) -> Optional[Response]:
        raw = await self.client.get(self._key(key))
        if raw is None:
            return None
        try:
            return CachedResponse.loads(raw).to_response()
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            await self.client.delete(self._key(key))
            return None

    async def put(self, key: str, response: Response, ttl: int) -> None:
        await self.client.setex(self._key(key), ttl, CachedResponse.from_response(response).dumps())

    async def delete(self, key: str) -> bool:
        return bool(await self.client.delete(self._key(key)))

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis edge cache connection closed")
