"""Shared infrastructure for examples."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine, Iterable
from dataclasses import dataclass, field

from basket.cart import CartLine, LineKey, StockConstraint


# Errors
@dataclass(frozen=True, slots=True)
class Failure(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


# Fake cart service
@dataclass(slots=True)
class FakeCartApi:
    carts: dict[int, tuple[CartLine, ...]] = field(default_factory=lambda: {
        1: (CartLine("sku-mug", None, 1, 10.0), CartLine("sku-tee", "L", 2, 12.0)),
    })
    failing: bool = False
    calls: int = 0

    async def get_cart(self, user_id: int) -> tuple[CartLine, ...]:
        self.calls += 1
        await asyncio.sleep(0.01)
        return self.carts.get(user_id, ())

    async def add_to_cart(self, user_id: int, line: CartLine) -> CartLine:
        await asyncio.sleep(0.01)
        if self.failing:
            raise Failure("cart service unavailable")
        self.carts[user_id] = (*self.carts.get(user_id, ()), line)
        return line

    async def replace_cart(self, user_id: int, lines: Iterable[CartLine]) -> int:
        await asyncio.sleep(0.01)
        if self.failing:
            raise Failure("cart service unavailable")
        self.carts[user_id] = tuple(lines)
        return len(self.carts[user_id])


# Fake inventory
@dataclass(slots=True)
class FakeInventory:
    available: dict[LineKey, int] = field(default_factory=lambda: {
        LineKey("sku-mug"): 3,
        LineKey("sku-tee", "L"): 10,
        LineKey("sku-cap"): 0,
    })

    async def lookup(self, keys: frozenset[LineKey]) -> list[StockConstraint]:
        await asyncio.sleep(0.01)
        return [
            StockConstraint(key.product_id, key.variant_id, self.available[key])
            for key in keys
            if key in self.available
        ]


# Helpers
def banner(title: str) -> None:
    print(f"\n{'─' * 50}\n{title}\n{'─' * 50}")


def run(main: Callable[[], Coroutine[object, object, None]]) -> None:
    asyncio.run(main())
