"""
Telemetry Aggregator

Anonymous usage counters, merged into a single JSON aggregate stored under
one key of the telemetry namespace:

    {
        "saveClicks": 4,
        "nested": {"exportFormats": {"ics": 2, "csv": 1}}
    }

Design Decisions:
- Closed allow-lists: unknown flat metrics and nested groups are dropped
- Nested metric keys are short, pattern-restricted and never structural names
- Deltas must be finite numbers in [0, 1e9]; negative deltas are refused so
  counters can only grow
- Each group holds at most a fixed number of keys; existing keys keep counting
- Reads favor availability: a failing or corrupt store reads as {}
- Writes do not: a failed read-modify-write surfaces as an error
"""

import hmac
import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

from edgelink.core.exceptions import StoreUnavailableError, UnauthorizedError
from edgelink.core.setting import Settings
from edgelink.db.interface import KeyValueStore
from edgelink.services.retry import with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

AGGREGATE_KEY = "counters_v1"
NESTED_FIELD = "nested"
MAX_DELTA = 1e9
# Largest stored counter still exact as a float
MAX_STORED_COUNT = 2 ** 53
ADMIN_TOKEN_MIN_LENGTH = 16

FLAT_METRICS = frozenset({
    "pageViews",
    "saveClicks",
    "shareClicks",
    "copyLinkClicks",
    "shortLinksCreated",
    "shortLinksOpened",
    "calendarExports",
    "optimizeRuns",
    "resetClicks",
    "settingsOpened",
    "helpOpened",
    "themeToggles",
    "printClicks",
})

NESTED_GROUPS = frozenset({
    "countries",
    "regions",
    "exportFormats",
    "strategies",
    "errors",
    "locales",
})

NESTED_KEY_RE = re.compile(r"^[\w-]{1,48}$", re.ASCII)
RESERVED_KEYS = frozenset({
    "__proto__",
    "constructor",
    "prototype",
    "toString",
    "hasOwnProperty",
    NESTED_FIELD,
})


def is_valid_delta(value: Any) -> bool:
    """Finite int/float within [0, MAX_DELTA]; JSON booleans do not count."""
    if isinstance(value, bool):
        return False
    # JSON integers are unbounded; compare before any float conversion
    if isinstance(value, int):
        return 0 <= value <= MAX_DELTA
    if isinstance(value, float):
        return math.isfinite(value) and 0 <= value <= MAX_DELTA
    return False


def is_valid_nested_key(key: Any) -> bool:
    return isinstance(key, str) and bool(NESTED_KEY_RE.match(key)) and key not in RESERVED_KEYS


def _as_count(value: Any) -> float:
    """Stored counter value, with anything unusable read as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if 0 <= value <= MAX_STORED_COUNT else 0
    if isinstance(value, float) and math.isfinite(value) and value >= 0:
        return value
    return 0


def is_valid_admin_token(provided: Optional[str], secret: Optional[str]) -> bool:
    """Constant-time comparison against a configured secret of minimum length."""
    if not secret or len(secret) < ADMIN_TOKEN_MIN_LENGTH or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), secret.encode("utf-8"))


@dataclass
class MergeSummary:
    accepted: int = 0
    dropped: int = 0


def merge_increments(
    aggregate: dict,
    increments: Optional[Mapping[str, Any]],
    nested: Optional[Mapping[str, Any]],
    max_keys_per_group: int,
) -> MergeSummary:
    """
    Add valid deltas to an aggregate in place.

    Args:
        aggregate: Current aggregate (modified)
        increments: Flat metric -> delta
        nested: Group -> {metric key -> delta}
        max_keys_per_group: Cap on distinct keys per nested group

    Returns:
        Counts of accepted and dropped deltas
    """
    summary = MergeSummary()

    for metric, delta in (increments or {}).items():
        if metric not in FLAT_METRICS or not is_valid_delta(delta):
            summary.dropped += 1
            continue
        aggregate[metric] = _as_count(aggregate.get(metric, 0)) + delta
        summary.accepted += 1

    for group, metrics in (nested or {}).items():
        if group not in NESTED_GROUPS or not isinstance(metrics, Mapping):
            summary.dropped += 1
            continue
        groups = aggregate.setdefault(NESTED_FIELD, {})
        if not isinstance(groups, dict):
            groups = aggregate[NESTED_FIELD] = {}
        counters = groups.setdefault(group, {})
        if not isinstance(counters, dict):
            counters = groups[group] = {}

        for key, delta in metrics.items():
            if not is_valid_nested_key(key) or not is_valid_delta(delta):
                summary.dropped += 1
                continue
            if key not in counters and len(counters) >= max_keys_per_group:
                summary.dropped += 1
                continue
            counters[key] = _as_count(counters.get(key, 0)) + delta
            summary.accepted += 1

    return summary


class TelemetryAggregator:
    """
    Validates and merges counter deltas into the persisted aggregate.

    The aggregate is one blob: concurrent posts are last-writer-wins.
    """

    def __init__(self, store: KeyValueStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def _retry(self, description: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await with_retry(
            operation,
            description,
            attempts=self.settings.STORE_RETRY_ATTEMPTS,
            delay=self.settings.STORE_RETRY_DELAY,
        )

    @staticmethod
    def _parse(raw: Optional[str]) -> dict:
        if not raw:
            return {}
        try:
            aggregate = json.loads(raw)
        except ValueError:
            logger.warning("Telemetry aggregate is not valid JSON, treating as empty")
            return {}
        if not isinstance(aggregate, dict):
            logger.warning("Telemetry aggregate is not an object, treating as empty")
            return {}
        return aggregate

    async def post(
        self,
        increments: Optional[Mapping[str, Any]] = None,
        nested: Optional[Mapping[str, Any]] = None,
    ) -> MergeSummary:
        """
        Merge deltas into the stored aggregate and write it back.

        Raises:
            StoreUnavailableError: If the aggregate can't be read or written
        """
        raw = await self._retry(f"get {AGGREGATE_KEY}", lambda: self.store.get(AGGREGATE_KEY))
        aggregate = self._parse(raw)

        summary = merge_increments(
            aggregate,
            increments,
            nested,
            self.settings.TELEMETRY_MAX_KEYS_PER_GROUP,
        )
        if summary.accepted:
            serialized = json.dumps(aggregate, separators=(",", ":"))
            await self._retry(f"put {AGGREGATE_KEY}", lambda: self.store.put(AGGREGATE_KEY, serialized))

        logger.debug(f"Telemetry merge: accepted={summary.accepted} dropped={summary.dropped}")
        return summary

    async def get(self) -> dict:
        """Current aggregate; {} when absent, corrupt or unreadable."""
        try:
            raw = await self._retry(f"get {AGGREGATE_KEY}", lambda: self.store.get(AGGREGATE_KEY))
        except StoreUnavailableError:
            return {}
        return self._parse(raw)

    def is_admin(self, admin_token: Optional[str]) -> bool:
        return is_valid_admin_token(admin_token, self.settings.ADMIN_TOKEN)

    async def reset(self, admin_token: Optional[str]) -> None:
        """
        Replace the aggregate with an empty object.

        Raises:
            UnauthorizedError: Without a valid admin token or the insecure-reset opt-in
            StoreUnavailableError: If the write keeps failing
        """
        if not (self.settings.ALLOW_INSECURE_TELEMETRY_RESET or self.is_admin(admin_token)):
            raise UnauthorizedError(
                hint="Send X-Admin-Token matching the configured ADMIN_TOKEN"
            )
        await self._retry(f"put {AGGREGATE_KEY}", lambda: self.store.put(AGGREGATE_KEY, "{}"))
        logger.warning("Telemetry aggregate reset")
