"""
Cache — deduplicated queries, tag invalidation, optimistic updates.

Key concepts:
- Query = key + tags + fetch; concurrent callers share one fetch
- Mutation = write + tags it invalidates
- OptimisticPatch = applied before the write, undone if it fails

Level 3: basket.cache
Level 2: combinators.lift
Level 1: kungfu.Result
"""

import asyncio

from kungfu import Ok, Error

from basket import cache as C
from basket.cart import CartLine
from examples._infra import banner, run, FakeCartApi

api = FakeCartApi()
USER_ID = 1

CART_KEY = C.make_key("getCart", {"user": USER_ID})


def cart_tags(lines: tuple[CartLine, ...]) -> list[C.Tag]:
    return [C.CART, *(C.CART_ITEM.with_id(line.product_id) for line in lines)]


async def main() -> None:
    banner("Cache: Dedup, Invalidation, Rollback")

    async with C.cache_client().build() as client:
        print("\n1. Three concurrent reads (one fetch):")
        async def read():
            return await client.query(CART_KEY, cart_tags, lambda: api.get_cart(USER_ID))

        results = await asyncio.gather(read(), read(), read())
        print(f"   origin calls={api.calls}, results={len(results)}")

        print("\n2. Read again (served from cache):")
        match await client.query(CART_KEY, cart_tags, lambda: api.get_cart(USER_ID)):
            case Ok(r):
                print(f"   from_cache={r.from_cache} lines={len(r.value)}")
            case Error(e):
                print(f"   error: {e}")

        print("\n3. Add to cart (invalidates Cart):")
        line = CartLine("sku-cap", None, 1, 20.0)
        match await client.mutate(lambda: api.add_to_cart(USER_ID, line), [C.CART]):
            case Ok(r):
                print(f"   invalidated={sorted(r.invalidated)}")
            case Error(e):
                print(f"   error: {e}")
        print(f"   status={client.get(CART_KEY).status.name}")

        await client.query(CART_KEY, cart_tags, lambda: api.get_cart(USER_ID))

        print("\n4. Optimistic add while the service is down (rolled back):")
        api.failing = True
        patch = C.OptimisticPatch(lambda lines: (*lines, CartLine("sku-pin", None, 1, 30.0)))
        match await client.mutate(
            lambda: api.add_to_cart(USER_ID, CartLine("sku-pin", None, 1, 30.0)),
            [C.CART],
            optimistic=patch,
        ):
            case Ok(_):
                print("   unexpected success")
            case Error(e):
                print(f"   {e}")
                print(f"   rolled_back={sorted(e.rolled_back)}")
        print(f"   lines in cache={len(client.get(CART_KEY).value)}")

    print("\nDone!")


if __name__ == "__main__":
    run(main)
