"""
Tests for consumption ledgers.
"""

import asyncio

import pytest
from kungfu import Error, Ok

from basket.cart import CartLine, MemoryLedger, MergeState, StorageLedger
from basket.storage import MemoryStorage
from tests.helpers import ok_value

LINES = (CartLine("p1", None, 2, 1.0),)


@pytest.fixture(params=["memory", "storage"])
def any_ledger(request, clock):
    if request.param == "memory":
        return MemoryLedger(clock)
    return StorageLedger(MemoryStorage(), clock=clock)


class TestLedger:
    """Both ledgers behave the same."""

    @pytest.mark.asyncio
    async def test_unknown_token(self, any_ledger):
        assert ok_value(await any_ledger.get("t")) is None

    @pytest.mark.asyncio
    async def test_claim_complete(self, any_ledger, clock):
        assert ok_value(await any_ledger.claim("t")) is True
        assert ok_value(await any_ledger.get("t")).state == MergeState.MERGING

        ok_value(await any_ledger.complete("t", LINES))
        record = ok_value(await any_ledger.get("t"))

        assert record.state == MergeState.MERGED
        assert record.lines == LINES
        assert record.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_second_claim_loses(self, any_ledger):
        assert ok_value(await any_ledger.claim("t")) is True
        assert ok_value(await any_ledger.claim("t")) is False

    @pytest.mark.asyncio
    async def test_concurrent_claims_have_one_winner(self, any_ledger):
        async def claim():
            return ok_value(await any_ledger.claim("t"))

        won = await asyncio.gather(*(claim() for _ in range(5)))

        assert sorted(won) == [False, False, False, False, True]

    @pytest.mark.asyncio
    async def test_release_allows_retry(self, any_ledger):
        await any_ledger.claim("t")
        ok_value(await any_ledger.release("t"))

        assert ok_value(await any_ledger.get("t")) is None
        assert ok_value(await any_ledger.claim("t")) is True

    @pytest.mark.asyncio
    async def test_release_does_not_undo_merge(self, any_ledger):
        await any_ledger.claim("t")
        await any_ledger.complete("t", LINES)
        await any_ledger.release("t")

        assert ok_value(await any_ledger.get("t")).state == MergeState.MERGED


class TestStorageLedger:
    @pytest.mark.asyncio
    async def test_survives_new_instance(self, clock):
        storage = MemoryStorage()
        await StorageLedger(storage, clock=clock).claim("t")
        await StorageLedger(storage, clock=clock).complete("t", LINES)

        record = ok_value(await StorageLedger(storage, clock=clock).get("t"))

        assert record.lines == LINES
        assert "basket:merged:t" in storage.snapshot()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            "{",
            "[]",
            "null",
            '"MERGED"',
            "3",
            '{"state": "MERGED"}',
            '{"state": "X", "updated_at": 1}',
        ],
    )
    async def test_corrupt_record_is_an_error(self, payload):
        storage = MemoryStorage({"basket:merged:t": payload})

        match await StorageLedger(storage).get("t"):
            case Ok(_):
                pytest.fail("expected Error")
            case Error(e):
                assert "t" in str(e)
