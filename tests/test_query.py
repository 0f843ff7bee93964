"""
Tests for the query executor: deduplication, caching, freshness,
rejections and invalidation during a fetch.
"""

import asyncio
from datetime import timedelta

import pytest

from basket.cache import CART, PRODUCT, EntryStatus, FetchError, query_endpoint
from tests.helpers import error_value, ok_value


class Backend:
    """Counts calls and can hold them until released."""

    def __init__(self, value=None, error=None):
        self.calls = 0
        self.value = value if value is not None else {"lines": []}
        self.error = error
        self.gate = asyncio.Event()
        self.gate.set()

    def hold(self):
        self.gate.clear()

    def release(self):
        self.gate.set()

    async def fetch(self):
        self.calls += 1
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.value


class TestDeduplication:
    """At most one fetch per key in flight."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, queries):
        backend = Backend()
        backend.hold()

        async def call():
            return await queries.query("getCart", [CART], backend.fetch)

        pending = asyncio.gather(*(call() for _ in range(5)))
        await asyncio.sleep(0)
        backend.release()
        results = await pending

        assert backend.calls == 1
        values = [ok_value(r).value for r in results]
        assert all(v is backend.value for v in values)

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_rejection(self, queries):
        backend = Backend(error=ConnectionError("offline"))
        backend.hold()

        async def call():
            return await queries.query("getCart", [CART], backend.fetch)

        pending = asyncio.gather(*(call() for _ in range(3)))
        await asyncio.sleep(0)
        backend.release()
        results = await pending

        errors = [error_value(r) for r in results]
        assert backend.calls == 1
        assert all(e is errors[0] for e in errors)
        assert isinstance(errors[0], FetchError)
        assert isinstance(errors[0].cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_different_keys_fetch_independently(self, queries):
        backend = Backend()

        await queries.query("getProduct(1)", [PRODUCT.with_id(1)], backend.fetch)
        await queries.query("getProduct(2)", [PRODUCT.with_id(2)], backend.fetch)

        assert backend.calls == 2


class TestCaching:
    """Fulfilled entries are served from the store."""

    @pytest.mark.asyncio
    async def test_second_query_is_served_from_cache(self, queries):
        backend = Backend()

        first = ok_value(await queries.query("getCart", [CART], backend.fetch))
        second = ok_value(await queries.query("getCart", [CART], backend.fetch))

        assert backend.calls == 1
        assert first.from_cache is False
        assert second.from_cache is True
        assert second.value is first.value

    @pytest.mark.asyncio
    async def test_fulfilled_entry_carries_tags_and_time(self, queries, store, clock):
        backend = Backend()

        await queries.query("getCart", [CART], backend.fetch)

        entry = store.get("getCart")
        assert entry.status == EntryStatus.FULFILLED
        assert entry.tags == frozenset({CART})
        assert entry.fetched_at == clock.now
        assert store.inflight("getCart") is None

    @pytest.mark.asyncio
    async def test_tags_computed_from_value(self, queries, store):
        async def fetch():
            return {"id": 7}

        await queries.query("getProduct(7)", lambda p: [PRODUCT.with_id(p["id"])], fetch)

        assert store.index.resolve([PRODUCT.with_id(7)]) == {"getProduct(7)"}

    @pytest.mark.asyncio
    async def test_invalidated_entry_is_refetched(self, queries, store):
        backend = Backend()
        await queries.query("getCart", [CART], backend.fetch)

        store.invalidate("getCart")
        result = ok_value(await queries.query("getCart", [CART], backend.fetch))

        assert backend.calls == 2
        assert result.from_cache is False


class TestFreshness:
    """Freshness window per call or per policy."""

    @pytest.mark.asyncio
    async def test_within_window_is_cached(self, queries, clock):
        backend = Backend()
        window = timedelta(seconds=10)

        await queries.query("getCart", [CART], backend.fetch, freshness=window)
        clock.advance(10)
        await queries.query("getCart", [CART], backend.fetch, freshness=window)

        assert backend.calls == 1

    @pytest.mark.asyncio
    async def test_past_window_is_refetched(self, queries, clock):
        backend = Backend()
        window = timedelta(seconds=10)

        await queries.query("getCart", [CART], backend.fetch, freshness=window)
        clock.advance(11)
        result = ok_value(await queries.query("getCart", [CART], backend.fetch, freshness=window))

        assert backend.calls == 2
        assert result.from_cache is False

    @pytest.mark.asyncio
    async def test_refetch_ignores_freshness(self, queries):
        backend = Backend()

        await queries.query("getCart", [CART], backend.fetch)
        result = ok_value(await queries.refetch("getCart", [CART], backend.fetch))

        assert backend.calls == 2
        assert result.from_cache is False


class TestRejection:
    """Failed fetches."""

    @pytest.mark.asyncio
    async def test_rejection_is_stored_and_retry_refetches(self, queries, store):
        failing = Backend(error=ValueError("bad"))
        error = error_value(await queries.query("getCart", [CART], failing.fetch))

        entry = store.get("getCart")
        assert entry.status == EntryStatus.REJECTED
        assert entry.error is error

        healthy = Backend()
        result = ok_value(await queries.query("getCart", [CART], healthy.fetch))
        assert result.value is healthy.value
        assert store.get("getCart").error is None

    @pytest.mark.asyncio
    async def test_rejection_keeps_previous_value(self, queries, store):
        await queries.query("getCart", [CART], Backend(value={"v": 1}).fetch)
        store.invalidate("getCart")

        await queries.query("getCart", [CART], Backend(error=OSError("x")).fetch)

        entry = store.get("getCart")
        assert entry.status == EntryStatus.REJECTED
        assert entry.value == {"v": 1}


class TestInvalidationDuringFetch:
    """A write that lands mid-fetch must not leave pre-write data fresh."""

    @pytest.mark.asyncio
    async def test_entry_is_stale_after_in_flight_fetch_settles(self, queries, store):
        backend = Backend()
        backend.hold()
        seen = []
        store.subscribe("getCart", seen.append)

        async def call():
            return await queries.query("getCart", [CART], backend.fetch)

        pending = asyncio.create_task(call())
        await asyncio.sleep(0)
        assert store.inflight("getCart") is not None

        assert store.invalidate("getCart") is True
        backend.release()
        result = await pending

        assert ok_value(result).value is backend.value
        assert store.get("getCart").status == EntryStatus.PENDING

        await queries.query("getCart", [CART], backend.fetch)
        assert backend.calls == 2
        assert store.get("getCart").status == EntryStatus.FULFILLED
        assert seen == ["getCart", "getCart"]

    @pytest.mark.asyncio
    async def test_query_after_mutation_does_not_join_stale_fetch(
        self, queries, mutations, store
    ):
        server = {"version": "v0"}
        gate = asyncio.Event()
        gate.set()
        calls = []

        async def get_cart():
            seen = server["version"]
            calls.append(seen)
            await gate.wait()
            return seen

        async def write():
            server["version"] = "v1"
            return True

        await queries.query("getCart", [CART], get_cart)
        gate.clear()

        async def refresh():
            return await queries.refetch("getCart", [CART], get_cart)

        early = asyncio.create_task(refresh())
        while len(calls) < 2:
            await asyncio.sleep(0)
        ok_value(await mutations.mutate(write, [CART]))

        async def read():
            return await queries.query("getCart", [CART], get_cart)

        late = asyncio.create_task(read())
        await asyncio.sleep(0)
        gate.set()

        assert ok_value(await early).value == "v0"
        result = ok_value(await late)
        assert result.value == "v1"
        assert result.from_cache is False
        assert calls == ["v0", "v0", "v1"]
        assert store.get("getCart").status == EntryStatus.FULFILLED


class TestEndpoints:
    """Queries through declared endpoints."""

    @pytest.mark.asyncio
    async def test_run_uses_endpoint_key_and_tags(self, queries, store):
        async def fetch(pid):
            return {"id": pid}

        endpoint = query_endpoint(
            "getProduct",
            fetch,
            provides=lambda pid, _: [PRODUCT.with_id(pid)],
        )

        result = ok_value(await queries.run(endpoint, 7))

        assert result.key == 'getProduct(7)'
        assert result.value == {"id": 7}
        assert store.index.resolve([PRODUCT.with_id(7)]) == {"getProduct(7)"}
