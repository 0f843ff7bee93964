"""
Cart — reducer, guest storage and guest → user reconciliation.

    from basket import cart as K

    outcome = K.merge(guest_lines, user_lines, stock, K.MergePolicy())

    engine = K.reconciler(client.mutations).commit(api.replace_cart).build()
    match await engine.reconcile(guest, user_lines, stock):
        case Ok(merged):
            ...
        case Error(K.AlreadyMergedError()):
            ...

Architecture:

    GuestCartStorage ──► GuestCart ─┐
                                    ├─► ReconciliationEngine ──► merge (pure)
    user cart, stock ───────────────┘          │
                                               ├─► ConsumptionLedger (claim / complete)
                                               └─► MutationExecutor (commit + invalidate Cart)
"""

from basket.cart._types import (
    LineKey,
    CartLine,
    GuestCart,
    StockConstraint,
    MergeState,
    MergeOutcome,
    MergeResult,
    StockLookupError,
    AlreadyMergedError,
    ReconcileError,
)
from basket.cart._policy import (
    MergeStrategy,
    MergePolicy,
    ADDITIVE,
    MAX,
)
from basket.cart import _reducer as reducer
from basket.cart._reducer import Cart
from basket.cart._merge import merge, stock_ceilings
from basket.cart._codec import (
    line_to_dict,
    line_from_dict,
    dumps_lines,
    loads_lines,
)
from basket.cart._storage import (
    SESSION_KEY,
    CART_KEY,
    new_session_token,
    GuestCartStorage,
)
from basket.cart._ledger import (
    LedgerRecord,
    ConsumptionLedger,
    MemoryLedger,
    StorageLedger,
)
from basket.cart._engine import (
    StockSource,
    Stock,
    Commit,
    ReconciliationEngine,
    Reconciler,
    reconciler,
)

__all__ = (
    # Types
    "LineKey",
    "CartLine",
    "GuestCart",
    "StockConstraint",
    "MergeState",
    "MergeOutcome",
    "MergeResult",
    "StockLookupError",
    "AlreadyMergedError",
    "ReconcileError",
    # Policy
    "MergeStrategy",
    "MergePolicy",
    "ADDITIVE",
    "MAX",
    # Reducer
    "reducer",
    "Cart",
    # Merge
    "merge",
    "stock_ceilings",
    # Codec
    "line_to_dict",
    "line_from_dict",
    "dumps_lines",
    "loads_lines",
    # Guest storage
    "SESSION_KEY",
    "CART_KEY",
    "new_session_token",
    "GuestCartStorage",
    # Ledger
    "LedgerRecord",
    "ConsumptionLedger",
    "MemoryLedger",
    "StorageLedger",
    # Engine
    "StockSource",
    "Stock",
    "Commit",
    "ReconciliationEngine",
    "Reconciler",
    "reconciler",
)
