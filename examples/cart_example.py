"""
Cart — guest → user reconciliation at sign-in.

Key concepts:
- GuestCartStorage = anonymous session token + cart snapshot
- merge = pure, additive by default, clamped to stock
- ReconciliationEngine = merge once per guest token, commit, invalidate Cart

Level 4: basket.cart
Level 3: basket.cache
Level 1: kungfu.Result
"""

from kungfu import Ok, Error

from basket import cache as C
from basket import cart as K
from basket import storage as St
from examples._infra import banner, run, FakeCartApi, FakeInventory

api = FakeCartApi()
inventory = FakeInventory()
USER_ID = 1


async def main() -> None:
    banner("Cart: Guest → User Reconciliation")

    storage = St.MemoryStorage()
    guests = K.GuestCartStorage(storage)

    print("\n1. Guest shops before signing in:")
    await guests.save([
        K.CartLine("sku-mug", None, 2, 5.0),
        K.CartLine("sku-cap", None, 1, 6.0),
    ])
    match await guests.load():
        case Ok(guest) if guest is not None:
            print(f"   token={guest.token} lines={len(guest.lines)}")
        case Ok(_):
            return
        case Error(e):
            print(f"   error: {e}")
            return

    async with C.cache_client().build() as client:
        engine = (
            K.reconciler(client.mutations)
            .ledger(K.StorageLedger(storage))
            .policy(K.MergePolicy().with_line_cap(999))
            .commit(lambda lines: api.replace_cart(USER_ID, lines))
            .guest_storage(guests)
            .build()
        )

        print("\n2. Sign-in: merge guest cart into user cart:")
        user_lines = await api.get_cart(USER_ID)
        match await engine.reconcile(guest, user_lines, inventory):
            case Ok(merged):
                for line in merged.lines:
                    print(f"   {line.key}: {line.quantity}")
                print(f"   clamped={[str(k) for k in merged.clamped]}")
                print(f"   dropped={[str(k) for k in merged.dropped]}")
            case Error(e):
                print(f"   error: {e}")

        print("\n3. Same guest token again (already merged):")
        match await engine.reconcile(guest, await api.get_cart(USER_ID), inventory):
            case Ok(_):
                print("   unexpected second merge")
            case Error(K.AlreadyMergedError() as e):
                print(f"   {e}, keeping user cart")
            case Error(e):
                print(f"   error: {e}")

    print("\nDone!")


if __name__ == "__main__":
    run(main)
