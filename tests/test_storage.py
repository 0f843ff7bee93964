"""
Tests for key-value storage, the cart line codec and guest cart storage.
"""

import json

import pytest
from kungfu import Error, Ok

from basket.cart import (
    CART_KEY,
    SESSION_KEY,
    CartLine,
    GuestCart,
    GuestCartStorage,
    dumps_lines,
    loads_lines,
    new_session_token,
)
from basket.storage import MemoryStorage, StorageError, storage_from
from tests.helpers import error_value, ok_value


class TestMemoryStorage:
    @pytest.mark.asyncio
    async def test_get_set_remove(self):
        storage = MemoryStorage()

        assert ok_value(await storage.get("k")) is None
        ok_value(await storage.set("k", "v"))
        assert ok_value(await storage.get("k")) == "v"
        assert ok_value(await storage.remove("k")) is True
        assert ok_value(await storage.remove("k")) is False

    @pytest.mark.asyncio
    async def test_functional_storage_delegates(self):
        data = {}

        async def get(key):
            return Ok(data.get(key))

        async def set_(key, value):
            data[key] = value
            return Ok(None)

        async def remove(key):
            return Ok(data.pop(key, None) is not None)

        storage = storage_from(get, set_, remove)
        await storage.set("a", "1")

        assert ok_value(await storage.get("a")) == "1"
        assert data == {"a": "1"}


class TestCodec:
    def test_dumps_is_json_list(self):
        text = dumps_lines([CartLine("p1", "red", 2, 5.0)])

        assert json.loads(text) == [
            {"product_id": "p1", "variant_id": "red", "quantity": 2, "added_at": 5.0}
        ]

    def test_loads_skips_malformed_lines(self):
        text = json.dumps(
            [
                {"product_id": "p1", "quantity": 1},
                {"product_id": "p2", "quantity": 0},
                {"quantity": 3},
                "garbage",
            ]
        )

        assert loads_lines(text) == (CartLine("p1", None, 1),)

    @pytest.mark.parametrize("text", ["not json", '{"lines": []}', "null"])
    def test_loads_bad_payload_is_empty(self, text):
        assert loads_lines(text) == ()


class TestSessionToken:
    def test_format(self, clock):
        token = new_session_token(clock)
        prefix, millis, suffix = token.split("_")

        assert prefix == "guest"
        assert int(millis) == int(clock.now * 1000)
        assert len(suffix) == 9

    def test_tokens_are_unique(self):
        assert new_session_token() != new_session_token()


class TestGuestCartStorage:
    @pytest.mark.asyncio
    async def test_no_session_loads_none(self, guest_storage):
        assert ok_value(await guest_storage.load()) is None
        assert ok_value(await guest_storage.current_token()) is None

    @pytest.mark.asyncio
    async def test_session_token_is_created_once(self, guest_storage, storage):
        first = ok_value(await guest_storage.session_token())
        second = ok_value(await guest_storage.session_token())

        assert first == second == "guest_1_abc"
        assert storage.snapshot()[SESSION_KEY] == "guest_1_abc"

    @pytest.mark.asyncio
    async def test_save_then_load(self, guest_storage, storage):
        lines = (CartLine("p1", None, 2), CartLine("p2", "s", 1))

        saved = ok_value(await guest_storage.save(lines))
        loaded = ok_value(await guest_storage.load())

        assert saved == GuestCart("guest_1_abc", lines)
        assert loaded == saved
        assert CART_KEY in storage.snapshot()

    @pytest.mark.asyncio
    async def test_session_without_cart_loads_empty(self, guest_storage):
        await guest_storage.session_token()

        assert ok_value(await guest_storage.load()) == GuestCart("guest_1_abc", ())

    @pytest.mark.asyncio
    async def test_discard_forgets_cart_and_session(self, guest_storage, storage):
        await guest_storage.save([CartLine("p1", None, 1)])

        ok_value(await guest_storage.discard())

        assert storage.snapshot() == {}
        assert ok_value(await guest_storage.load()) is None

    @pytest.mark.asyncio
    async def test_storage_errors_are_returned(self):
        failure = StorageError("unavailable")

        async def get(key):
            return Error(failure)

        async def set_(key, value):
            return Error(failure)

        async def remove(key):
            return Error(failure)

        guests = GuestCartStorage(storage_from(get, set_, remove))

        assert error_value(await guests.load()) is failure
        assert error_value(await guests.save([])) is failure
        assert error_value(await guests.discard()) is failure
