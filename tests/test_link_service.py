"""
Tests for the link service: create, update, resolve.

Runs against the in-memory key-value store so the storage layout can be
inspected directly.
"""

import pytest
from starlette.responses import RedirectResponse

from conftest import APP_ORIGIN, ScriptedRandom, make_settings
from edgelink.core.exceptions import (
    InvalidShortCodeError,
    InvalidURLError,
    ShortCodeNotFoundError,
    StoreUnavailableError,
)
from edgelink.db.store import MemoryKeyValueStore
from edgelink.services.edge_cache import MemoryResponseCache
from edgelink.services.link_service import LinkService, code_key, hash_key
from edgelink.services.shortcode import ShortCodeGenerator
from edgelink.services.url_hasher import hash_url

URL_A = f"{APP_ORIGIN}/#a"
URL_B = f"{APP_ORIGIN}/#b"


class FlakyStore(MemoryKeyValueStore):
    """Memory store whose first `failures` calls raise."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    def _maybe_fail(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("store hiccup")

    async def get(self, key):
        self._maybe_fail()
        return await super().get(key)

    async def put(self, key, value):
        self._maybe_fail()
        await super().put(key, value)


def make_service(store=None, words=("amber", "coral", "nova", "delta", "ember", "fjord"), cache=None):
    generator = ShortCodeGenerator(rng=ScriptedRandom(words))
    return LinkService(
        store if store is not None else MemoryKeyValueStore(),
        make_settings(),
        generator=generator,
        cache=cache,
    )


class TestCreate:
    """Test short link creation and deduplication."""

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self):
        service = make_service()

        first = await service.create(URL_A)
        assert first.code == "amber-coral-nova"
        assert first.existing is False

        for _ in range(3):
            again = await service.create(URL_A)
            assert again.code == "amber-coral-nova"
            assert again.existing is True

    @pytest.mark.asyncio
    async def test_storage_layout(self):
        store = MemoryKeyValueStore()
        service = make_service(store)

        await service.create(URL_A)

        assert store.snapshot() == {
            "code:amber-coral-nova": URL_A,
            f"hash:{hash_url(URL_A)}": "amber-coral-nova",
        }

    @pytest.mark.asyncio
    async def test_distinct_urls_get_distinct_codes(self):
        service = make_service()
        first = await service.create(URL_A)
        second = await service.create(URL_B)
        assert first.code == "amber-coral-nova"
        assert second.code == "delta-ember-fjord"
        assert await service.resolve(first.code) == URL_A
        assert await service.resolve(second.code) == URL_B

    @pytest.mark.asyncio
    async def test_rejects_foreign_urls_before_touching_the_store(self):
        store = MemoryKeyValueStore()
        service = make_service(store)
        for url in ["https://evil.example/#a", "", None, 123]:
            with pytest.raises(InvalidURLError):
                await service.create(url)
        assert store.snapshot() == {}

    @pytest.mark.asyncio
    async def test_legacy_code_is_replaced_in_reverse_index(self):
        store = MemoryKeyValueStore({
            "code:aB3xYz": URL_A,
            f"hash:{hash_url(URL_A)}": "aB3xYz",
        })
        service = make_service(store)

        result = await service.create(URL_A)

        assert result.existing is False
        assert result.code == "amber-coral-nova"
        assert await store.get(hash_key(hash_url(URL_A))) == "amber-coral-nova"
        # The legacy code still resolves
        assert await service.resolve("aB3xYz") == URL_A

    @pytest.mark.asyncio
    async def test_transient_store_failures_are_retried(self):
        store = FlakyStore(failures=2)
        service = make_service(store)

        result = await service.create(URL_A)

        assert result.code == "amber-coral-nova"
        assert await store.get(code_key("amber-coral-nova")) == URL_A

    @pytest.mark.asyncio
    async def test_retry_exhaustion_is_raised(self):
        service = make_service(FlakyStore(failures=100))
        with pytest.raises(StoreUnavailableError):
            await service.create(URL_A)


class TestUpdate:
    """Test repointing an existing code."""

    @pytest.mark.asyncio
    async def test_update_changes_resolution(self):
        service = make_service()
        await service.create(URL_A)

        result = await service.update("amber-coral-nova", URL_B)

        assert result.updated is True
        assert result.code == "amber-coral-nova"
        assert await service.resolve("amber-coral-nova") == URL_B

    @pytest.mark.asyncio
    async def test_update_moves_reverse_index(self):
        store = MemoryKeyValueStore()
        service = make_service(store)
        await service.create(URL_A)

        await service.update("amber-coral-nova", URL_B)

        assert await store.get(hash_key(hash_url(URL_A))) is None
        assert await store.get(hash_key(hash_url(URL_B))) == "amber-coral-nova"
        # Creating the new URL now deduplicates to the updated code
        again = await service.create(URL_B)
        assert again.existing is True
        assert again.code == "amber-coral-nova"

    @pytest.mark.asyncio
    async def test_update_keeps_reverse_entry_owned_by_another_code(self):
        store = MemoryKeyValueStore({
            "code:amber-coral-nova": URL_A,
            "code:delta-ember-fjord": URL_A,
            f"hash:{hash_url(URL_A)}": "delta-ember-fjord",
        })
        service = make_service(store)

        await service.update("amber-coral-nova", URL_B)

        assert await store.get(hash_key(hash_url(URL_A))) == "delta-ember-fjord"

    @pytest.mark.asyncio
    async def test_update_leaves_other_codes_alone(self):
        service = make_service()
        await service.create(URL_A)
        other = await service.create(f"{APP_ORIGIN}/#other")

        await service.update("amber-coral-nova", URL_B)

        assert await service.resolve(other.code) == f"{APP_ORIGIN}/#other"

    @pytest.mark.asyncio
    async def test_update_to_same_url_writes_nothing(self):
        store = MemoryKeyValueStore()
        service = make_service(store)
        await service.create(URL_A)
        before = store.snapshot()

        result = await service.update("amber-coral-nova", URL_A)

        assert result.updated is False
        assert store.snapshot() == before

    @pytest.mark.asyncio
    async def test_update_unknown_code(self):
        service = make_service()
        with pytest.raises(ShortCodeNotFoundError):
            await service.update("amber-coral-nova", URL_B)

    @pytest.mark.asyncio
    async def test_update_invalid_code(self):
        service = make_service()
        with pytest.raises(InvalidShortCodeError):
            await service.update("../../etc", URL_B)

    @pytest.mark.asyncio
    async def test_update_evicts_cached_redirect(self):
        cache = MemoryResponseCache()
        service = make_service(cache=cache)
        await service.create(URL_A)
        cache_key = f"{APP_ORIGIN}/s/amber-coral-nova"
        await cache.put(cache_key, RedirectResponse(URL_A, status_code=302), ttl=300)

        await service.update("amber-coral-nova", URL_B)

        assert await cache.match(cache_key) is None


class TestResolve:
    @pytest.mark.asyncio
    async def test_unknown_code_resolves_to_none(self):
        assert await make_service().resolve("amber-coral-nova") is None

    @pytest.mark.asyncio
    async def test_invalid_code_raises(self):
        with pytest.raises(InvalidShortCodeError):
            await make_service().resolve("not-a-real-code")
