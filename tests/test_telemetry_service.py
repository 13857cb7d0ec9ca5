"""
Tests for telemetry validation and aggregation.
"""

import json
import math

import pytest

from conftest import ADMIN_TOKEN, make_settings
from edgelink.core.exceptions import StoreUnavailableError, UnauthorizedError
from edgelink.db.store import MemoryKeyValueStore
from edgelink.services.telemetry_service import (
    AGGREGATE_KEY,
    TelemetryAggregator,
    is_valid_admin_token,
    is_valid_delta,
    is_valid_nested_key,
    merge_increments,
)


class BrokenStore(MemoryKeyValueStore):
    async def get(self, key):
        raise ConnectionError("store down")

    async def put(self, key, value):
        raise ConnectionError("store down")


class TestDeltaValidation:
    def test_valid_deltas(self):
        for value in [0, 1, 2.5, 1e9]:
            assert is_valid_delta(value), value

    def test_invalid_deltas(self):
        for value in [-1, 1e9 + 1, math.inf, math.nan, True, "3", None, [1]]:
            assert not is_valid_delta(value), value

    def test_huge_integers_are_out_of_range(self):
        assert not is_valid_delta(10 ** 400)
        assert not is_valid_delta(-(10 ** 400))
        assert is_valid_delta(10 ** 9)

    def test_nested_keys(self):
        assert is_valid_nested_key("ics")
        assert is_valid_nested_key("en-US")
        assert is_valid_nested_key("a_b")
        for key in ["", "x" * 49, "__proto__", "constructor", "nested", "has space", "ümlaut", 5]:
            assert not is_valid_nested_key(key), key

    def test_admin_token(self):
        assert is_valid_admin_token(ADMIN_TOKEN, ADMIN_TOKEN)
        assert not is_valid_admin_token("wrong", ADMIN_TOKEN)
        assert not is_valid_admin_token(None, ADMIN_TOKEN)
        # Secrets shorter than 16 characters never authorize anything
        assert not is_valid_admin_token("short", "short")
        assert not is_valid_admin_token("", None)


class TestMergeIncrements:
    """Test the allow-list merge into an aggregate."""

    def test_drops_unknown_and_invalid(self):
        aggregate = {}
        summary = merge_increments(
            aggregate,
            {"saveClicks": 2, "bogusMetric": 1, "pageViews": -3, "shareClicks": math.inf},
            {"exportFormats": {"ics": 1, "__proto__": 1}, "unknownGroup": {"x": 1}},
            max_keys_per_group=200,
        )
        assert aggregate == {"saveClicks": 2, "nested": {"exportFormats": {"ics": 1}}}
        assert summary.accepted == 2
        assert summary.dropped == 5

    def test_group_key_cap(self):
        aggregate = {"nested": {"countries": {"US": 1, "DE": 1}}}
        merge_increments(aggregate, None, {"countries": {"US": 1, "FR": 1}}, max_keys_per_group=2)
        assert aggregate["nested"]["countries"] == {"US": 2, "DE": 1}

    def test_corrupt_stored_values_restart_from_zero(self):
        aggregate = {"saveClicks": "lots", "nested": "oops"}
        merge_increments(aggregate, {"saveClicks": 1}, {"errors": {"timeout": 1}}, max_keys_per_group=200)
        assert aggregate == {"saveClicks": 1, "nested": {"errors": {"timeout": 1}}}

    def test_oversized_stored_counter_restarts_from_zero(self):
        aggregate = {"saveClicks": 10 ** 400, "pageViews": 7}
        summary = merge_increments(aggregate, {"saveClicks": 2.5, "pageViews": 1}, None, max_keys_per_group=200)
        assert aggregate == {"saveClicks": 2.5, "pageViews": 8}
        assert summary.accepted == 2


class TestTelemetryAggregator:
    @pytest.mark.asyncio
    async def test_deltas_accumulate(self):
        aggregator = TelemetryAggregator(MemoryKeyValueStore(), make_settings())
        await aggregator.post(increments={"saveClicks": 2})
        await aggregator.post(increments={"saveClicks": 2}, nested={"locales": {"en": 1}})

        assert await aggregator.get() == {"saveClicks": 4, "nested": {"locales": {"en": 1}}}

    @pytest.mark.asyncio
    async def test_nothing_written_when_everything_dropped(self):
        store = MemoryKeyValueStore()
        aggregator = TelemetryAggregator(store, make_settings())

        summary = await aggregator.post(increments={"bogus": 1})

        assert summary.accepted == 0
        assert store.snapshot() == {}

    @pytest.mark.asyncio
    async def test_get_tolerates_corrupt_and_failing_store(self):
        corrupt = TelemetryAggregator(MemoryKeyValueStore({AGGREGATE_KEY: "{not json"}), make_settings())
        assert await corrupt.get() == {}

        not_object = TelemetryAggregator(MemoryKeyValueStore({AGGREGATE_KEY: "[1, 2]"}), make_settings())
        assert await not_object.get() == {}

        broken = TelemetryAggregator(BrokenStore(), make_settings(STORE_RETRY_ATTEMPTS=2))
        assert await broken.get() == {}

    @pytest.mark.asyncio
    async def test_post_surfaces_store_failure(self):
        aggregator = TelemetryAggregator(BrokenStore(), make_settings(STORE_RETRY_ATTEMPTS=2))
        with pytest.raises(StoreUnavailableError):
            await aggregator.post(increments={"saveClicks": 1})

    @pytest.mark.asyncio
    async def test_reset_requires_admin_token(self):
        store = MemoryKeyValueStore({AGGREGATE_KEY: json.dumps({"saveClicks": 4})})
        aggregator = TelemetryAggregator(store, make_settings())

        with pytest.raises(UnauthorizedError):
            await aggregator.reset(None)
        with pytest.raises(UnauthorizedError):
            await aggregator.reset("not-the-admin-token")
        assert await aggregator.get() == {"saveClicks": 4}

        await aggregator.reset(ADMIN_TOKEN)
        assert await aggregator.get() == {}

    @pytest.mark.asyncio
    async def test_insecure_reset_opt_in(self):
        store = MemoryKeyValueStore({AGGREGATE_KEY: json.dumps({"saveClicks": 4})})
        aggregator = TelemetryAggregator(
            store,
            make_settings(ADMIN_TOKEN=None, ALLOW_INSECURE_TELEMETRY_RESET=True),
        )
        await aggregator.reset(None)
        assert await aggregator.get() == {}
