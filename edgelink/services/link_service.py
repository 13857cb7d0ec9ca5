"""
Link Service

This service handles the core business logic for short links:
- Creating codes for application URLs, deduplicated by URL digest
- Repointing an existing code at a new URL
- Resolving a code to its URL

Storage layout (links namespace):
- code:<code>   -> long URL (source of truth)
- hash:<digest> -> current code for that URL (reverse index, for dedup)

Consistency:
- The two keys are written independently, code:<code> first. A failure in
  between leaves a resolvable but undeduplicated code; the only consequence
  is that a later create for the same URL may mint a second code.
- Two concurrent creates for the same new URL can both miss the reverse
  index and mint two valid codes. Codes are unique; URLs are not guaranteed
  to map to a single code.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from edgelink.core.exceptions import (
    InvalidShortCodeError,
    InvalidURLError,
    ShortCodeNotFoundError,
)
from edgelink.core.setting import Settings
from edgelink.core.validators import (
    is_current_shape,
    is_same_origin_url,
    sanitize_short_code,
)
from edgelink.db.interface import KeyValueStore
from edgelink.services.edge_cache import ResponseCache
from edgelink.services.retry import with_retry
from edgelink.services.shortcode import ShortCodeGenerator
from edgelink.services.url_hasher import hash_url

logger = logging.getLogger(__name__)

T = TypeVar("T")


def code_key(code: str) -> str:
    return f"code:{code}"


def hash_key(digest: str) -> str:
    return f"hash:{digest}"


@dataclass(frozen=True)
class CreateResult:
    code: str
    existing: bool


@dataclass(frozen=True)
class UpdateResult:
    code: str
    updated: bool


class LinkService:
    """
    Create, update and resolve short links.

    Every store and cache call goes through a bounded retry; exhaustion is
    raised as StoreUnavailableError.
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings,
        generator: Optional[ShortCodeGenerator] = None,
        cache: Optional[ResponseCache] = None,
    ):
        """
        Args:
            store: Links namespace
            settings: Application settings
            generator: Short code generator (a default one is created if omitted)
            cache: Edge cache to invalidate on update
        """
        self.store = store
        self.settings = settings
        self.generator = generator or ShortCodeGenerator()
        self.cache = cache

    async def _retry(self, description: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await with_retry(
            operation,
            description,
            attempts=self.settings.STORE_RETRY_ATTEMPTS,
            delay=self.settings.STORE_RETRY_DELAY,
        )

    async def _get(self, key: str) -> Optional[str]:
        return await self._retry(f"get {key}", lambda: self.store.get(key))

    async def _put(self, key: str, value: str) -> None:
        await self._retry(f"put {key}", lambda: self.store.put(key, value))

    async def _delete(self, key: str) -> None:
        await self._retry(f"delete {key}", lambda: self.store.delete(key))

    def validate_url(self, url: object) -> str:
        """
        Raises:
            InvalidURLError: If the URL does not target the application's origin
        """
        if not is_same_origin_url(url, self.settings.APP_ORIGIN, self.settings.MAX_URL_LENGTH):
            raise InvalidURLError(url)
        return url

    @staticmethod
    def validate_code(code: object) -> str:
        sanitized = sanitize_short_code(code)
        if not sanitized:
            raise InvalidShortCodeError(code)
        return sanitized

    async def _is_taken(self, code: str) -> bool:
        return await self._get(code_key(code)) is not None

    async def create(self, url: object) -> CreateResult:
        """
        Create a short code for a URL, or return the code it already has.

        Args:
            url: Application URL to shorten

        Returns:
            CreateResult with existing=True when the reverse index already
            held a current-shape code for this URL

        Raises:
            InvalidURLError: If the URL is not an application URL
            CodeGenerationExhaustedError: If no unused code could be found
            StoreUnavailableError: If the store keeps failing
        """
        url = self.validate_url(url)
        digest = hash_url(url)

        existing_code = await self._get(hash_key(digest))
        if existing_code and is_current_shape(existing_code):
            return CreateResult(code=existing_code, existing=True)
        if existing_code:
            # Legacy code stays resolvable; the reverse index moves to a new word code
            logger.info(f"Migrating reverse index for legacy code {existing_code}")

        code = await self.generator.generate_unique(self._is_taken)

        await self._put(code_key(code), url)
        await self._put(hash_key(digest), code)

        logger.info(f"Created short code {code}")
        return CreateResult(code=code, existing=False)

    async def update(self, code: object, url: object) -> UpdateResult:
        """
        Repoint an existing code at a new URL.

        Steps (not atomic as a whole): write code:<code>, drop the old URL's
        reverse entry if it still points here, write the new URL's reverse
        entry, evict the cached redirect for the code's public path.

        Raises:
            InvalidShortCodeError: If the code has no accepted shape
            InvalidURLError: If the URL is not an application URL
            ShortCodeNotFoundError: If the code has no mapping
            StoreUnavailableError: If the store or cache keeps failing
        """
        code = self.validate_code(code)
        url = self.validate_url(url)

        current_url = await self._get(code_key(code))
        if current_url is None:
            raise ShortCodeNotFoundError(code)
        if current_url == url:
            return UpdateResult(code=code, updated=False)

        await self._put(code_key(code), url)

        stale_key = hash_key(hash_url(current_url))
        if await self._get(stale_key) == code:
            await self._delete(stale_key)
        await self._put(hash_key(hash_url(url)), code)

        if self.cache is not None:
            cache_key = self.settings.short_url_for(code)
            await self._retry(f"evict {cache_key}", lambda: self.cache.delete(cache_key))

        logger.info(f"Updated short code {code}")
        return UpdateResult(code=code, updated=True)

    async def resolve(self, code: object) -> Optional[str]:
        """
        Look up the URL behind a code. Pure read.

        Returns:
            The stored URL, or None if the code is unknown

        Raises:
            InvalidShortCodeError: If the code has no accepted shape
        """
        code = self.validate_code(code)
        return await self._get(code_key(code))
