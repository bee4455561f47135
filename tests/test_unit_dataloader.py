"""
Unit tests for KeyedBatchLoader and the batch-function helpers.

Tests cover:
- Coalescing loads issued in the same tick into one batch call
- Deduplication and caching (including structurally equal mapping keys)
- Per-key failures resolving to None
- Batch ceiling and sequential overflow batches
- Contract violations (wrong result count)
- load_many_as_map, prime, clear
"""

import asyncio
from unittest.mock import AsyncMock, call

import pytest

from app.core.errors import BatchLoadError
from app.core.observability import metrics
from app.services.dataloader import (
    KeyedBatchLoader,
    canonical_cache_key,
    group_by_key,
    index_by_key,
)


def times_ten(keys):
    return [key * 10 for key in keys]


class TestCoalescing:
    """Tests for batching loads issued before the loop runs."""

    @pytest.mark.anyio
    async def test_same_tick_loads_share_one_batch(self):
        """Test load(1), load(2), load(2), load(3) make a single call with [1, 2, 3]."""
        batch_fn = AsyncMock(side_effect=times_ten)
        loader = KeyedBatchLoader(batch_fn, name="coalesce")

        results = await asyncio.gather(
            loader.load(1), loader.load(2), loader.load(2), loader.load(3)
        )

        assert results == [10, 20, 20, 30]
        batch_fn.assert_awaited_once_with([1, 2, 3])

    @pytest.mark.anyio
    async def test_cached_key_does_not_call_batch_again(self):
        batch_fn = AsyncMock(side_effect=times_ten)
        loader = KeyedBatchLoader(batch_fn, name="cache")

        assert await loader.load(1) == 10
        assert await loader.load(1) == 10

        batch_fn.assert_awaited_once_with([1])

    @pytest.mark.anyio
    async def test_load_after_dispatch_goes_into_a_new_batch(self):
        batch_fn = AsyncMock(side_effect=times_ten)
        loader = KeyedBatchLoader(batch_fn, name="later")

        await loader.load(1)
        await loader.load(2)

        assert batch_fn.await_args_list == [call([1]), call([2])]

    @pytest.mark.anyio
    async def test_load_many_preserves_order_and_duplicates(self):
        batch_fn = AsyncMock(side_effect=times_ten)
        loader = KeyedBatchLoader(batch_fn, name="many")

        results = await loader.load_many([3, 1, 3, 2])

        assert results == [30, 10, 30, 20]
        batch_fn.assert_awaited_once_with([3, 1, 2])

    @pytest.mark.anyio
    async def test_load_many_of_nothing(self):
        batch_fn = AsyncMock(side_effect=times_ten)
        loader = KeyedBatchLoader(batch_fn, name="empty")

        assert await loader.load_many([]) == []
        batch_fn.assert_not_awaited()


class TestStructuralKeys:
    """Tests for mapping keys compared by content."""

    @pytest.mark.anyio
    async def test_mapping_keys_collide_regardless_of_insertion_order(self):
        batch_fn = AsyncMock(side_effect=lambda keys: [key["a"] + key["b"] for key in keys])
        loader = KeyedBatchLoader(batch_fn, name="mapping")

        first, second = await asyncio.gather(
            loader.load({"a": 1, "b": 2}), loader.load({"b": 2, "a": 1})
        )

        assert first == second == 3
        assert batch_fn.await_count == 1
        assert len(batch_fn.await_args.args[0]) == 1

    @pytest.mark.anyio
    async def test_canonical_cache_key(self):
        assert canonical_cache_key({"b": 1, "a": {"d": 2, "c": 3}}) == canonical_cache_key(
            {"a": {"c": 3, "d": 2}, "b": 1}
        )
        assert canonical_cache_key([1, 2]) != canonical_cache_key([2, 1])
        assert canonical_cache_key(5) == 5
        assert canonical_cache_key("5") != canonical_cache_key(5)


class TestFailures:
    """Tests for per-key failures and contract violations."""

    @pytest.mark.anyio
    async def test_exception_result_becomes_none_for_that_key_only(self):
        batch_fn = AsyncMock(return_value=[ValueError("boom"), "ok"])
        loader = KeyedBatchLoader(batch_fn, name="partial")
        before = metrics.dataloader_key_errors_total.labels(loader="partial")._value.get()

        results = await loader.load_many(["bad", "good"])

        assert results == [None, "ok"]
        after = metrics.dataloader_key_errors_total.labels(loader="partial")._value.get()
        assert after == before + 1

    @pytest.mark.anyio
    async def test_per_key_failure_is_logged(self, caplog: pytest.LogCaptureFixture):
        loader = KeyedBatchLoader(AsyncMock(return_value=[KeyError("x")]), name="logged")

        with caplog.at_level("ERROR", logger="app.services.dataloader"):
            assert await loader.load({"id": 1}) is None

        assert 'logged: failed to load key {"id": 1}' in caplog.text

    @pytest.mark.anyio
    async def test_wrong_result_count_raises_batch_load_error(self):
        loader = KeyedBatchLoader(AsyncMock(return_value=[1]), name="short")

        with pytest.raises(BatchLoadError, match="returned 1 results for 2 keys"):
            await loader.load_many([1, 2])

    @pytest.mark.anyio
    async def test_batch_function_exception_fails_every_key(self):
        loader = KeyedBatchLoader(AsyncMock(side_effect=RuntimeError("db down")), name="down")

        with pytest.raises(RuntimeError, match="db down"):
            await loader.load(1)


class TestBatchCeiling:
    """Tests for max_batch_size."""

    @pytest.mark.anyio
    async def test_overflow_is_split_into_sequential_batches(self):
        in_flight = 0
        max_in_flight = 0

        async def batch_fn(keys):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return times_ten(keys)

        spy = AsyncMock(side_effect=batch_fn)
        loader = KeyedBatchLoader(spy, name="ceiling", max_batch_size=2)

        results = await loader.load_many([1, 2, 3, 4, 5])

        assert results == [10, 20, 30, 40, 50]
        assert spy.await_args_list == [call([1, 2]), call([3, 4]), call([5])]
        assert max_in_flight == 1

    @pytest.mark.anyio
    async def test_batch_metrics_recorded(self):
        loader = KeyedBatchLoader(AsyncMock(side_effect=times_ten), name="metered")
        before = metrics.dataloader_batches_total.labels(loader="metered")._value.get()

        await loader.load_many([1, 2, 3])

        after = metrics.dataloader_batches_total.labels(loader="metered")._value.get()
        assert after == before + 1


class TestCacheMaintenance:
    """Tests for load_many_as_map, prime and clear."""

    @pytest.mark.anyio
    async def test_load_many_as_map_omits_missing(self):
        loader = KeyedBatchLoader(
            AsyncMock(side_effect=lambda keys: [None if key == "b" else key.upper() for key in keys]),
            name="as_map",
        )

        assert await loader.load_many_as_map(["a", "b", "c"]) == {"a": "A", "c": "C"}

    @pytest.mark.anyio
    async def test_load_many_as_map_accepts_mapping_keys(self):
        """Test structural keys come back under their cache identity."""
        batch_fn = AsyncMock(side_effect=lambda keys: [key["a"] + key["b"] for key in keys])
        loader = KeyedBatchLoader(batch_fn, name="as_map_mapping")

        found = await loader.load_many_as_map([{"a": 1, "b": 2}, {"b": 2, "a": 1}, {"a": 5, "b": 5}])

        assert found == {
            canonical_cache_key({"a": 1, "b": 2}): 3,
            canonical_cache_key({"a": 5, "b": 5}): 10,
        }
        batch_fn.assert_awaited_once()

    @pytest.mark.anyio
    async def test_prime_skips_batch_function(self):
        batch_fn = AsyncMock(side_effect=times_ten)
        loader = KeyedBatchLoader(batch_fn, name="prime")

        loader.prime(7, 700)

        assert await loader.load(7) == 700
        batch_fn.assert_not_awaited()

    @pytest.mark.anyio
    async def test_clear_forces_reload(self):
        batch_fn = AsyncMock(side_effect=times_ten)
        loader = KeyedBatchLoader(batch_fn, name="clear")

        await loader.load(1)
        loader.clear(1)
        await loader.load(1)

        assert batch_fn.await_count == 2

    @pytest.mark.anyio
    async def test_clear_all(self):
        batch_fn = AsyncMock(side_effect=times_ten)
        loader = KeyedBatchLoader(batch_fn, name="clear_all")

        await loader.load_many([1, 2])
        loader.clear_all()
        await loader.load_many([1, 2])

        assert batch_fn.await_count == 2


class TestBatchHelpers:
    """Tests for group_by_key and index_by_key."""

    @pytest.mark.anyio
    async def test_group_by_key_gives_empty_list_for_no_match(self):
        rows = [("p1", "c1"), ("p2", "c2"), ("p1", "c3")]

        grouped = group_by_key(rows, ["p1", "p3", "p2"], lambda row: row[0])

        assert grouped == [[("p1", "c1"), ("p1", "c3")], [], [("p2", "c2")]]

    @pytest.mark.anyio
    async def test_index_by_key_uses_default_for_missing(self):
        rows = [{"id": 2}, {"id": 1}]

        indexed = index_by_key(rows, [1, 3, 2], lambda row: row["id"], default="missing")

        assert indexed == [{"id": 1}, "missing", {"id": 2}]
