"""
Rate Limiting

Fixed-window request counters keyed by (bucket, client identifier).

Design Decisions:
- Ceilings use the familiar "count/period" notation ("20/minute"), parsed
  with the `limits` package
- State lives in process memory only: every running instance counts on its
  own, so limits are best-effort rather than exact
- The clock is injectable so window expiry can be tested deterministically
- The table is pruned of stale windows once it grows past a threshold
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Tuple

from limits import RateLimitItem, parse

logger = logging.getLogger(__name__)

# Default ceilings per bucket
# Format: "count/period" (e.g., "20/minute" means 20 requests per minute)
RATE_LIMITS = {
    "create": "20/minute",
    "update": "20/minute",
    "telemetry": "60/minute",
}


@dataclass
class RateLimitEntry:
    window_start: float
    count: int


class FixedWindowRateLimiter:
    """
    Per-bucket, per-client fixed window counter.

    A window opens on the first request of a client in a bucket and lasts for
    the bucket's period. Requests beyond the ceiling inside that window are
    refused; buckets without a configured ceiling are never limited.
    """

    def __init__(
        self,
        limits: Mapping[str, str] = RATE_LIMITS,
        clock: Callable[[], float] = time.monotonic,
        prune_threshold: int = 10_000,
    ):
        self._limits: Dict[str, RateLimitItem] = {
            bucket: parse(spec) for bucket, spec in limits.items()
        }
        self._clock = clock
        self._prune_threshold = prune_threshold
        self._entries: Dict[Tuple[str, str], RateLimitEntry] = {}
        self._lock = threading.Lock()

    def allow(self, bucket: str, client_id: str) -> bool:
        limit = self._limits.get(bucket)
        if limit is None:
            return True

        window = limit.get_expiry()
        now = self._clock()
        key = (bucket, client_id)

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now - entry.window_start > window:
                entry = RateLimitEntry(window_start=now, count=1)
                self._entries[key] = entry
            else:
                entry.count += 1

            if len(self._entries) > self._prune_threshold:
                self._prune(now)

            count = entry.count

        allowed = count <= limit.amount
        if not allowed:
            logger.info(f"Rate limit hit: bucket={bucket} client={client_id} count={count}")
        return allowed

    def _prune(self, now: float) -> None:
        stale = [
            key for key, entry in self._entries.items()
            if now - entry.window_start > self._limits[key[0]].get_expiry()
        ]
        for key in stale:
            del self._entries[key]
        logger.debug(f"Pruned {len(stale)} stale rate limit windows")

    def __len__(self) -> int:
        return len(self._entries)
