"""
Merge — guest cart into user cart. Pure and deterministic.

    1. output keyed by (product, variant)
    2. seed with user lines
    3. fold guest lines in (insert, or combine per MergeStrategy)
    4. clamp to stock, drop zeros
    5. sort by added_at, ties by product then variant
"""

from __future__ import annotations

from collections.abc import Iterable

from basket.cart import _reducer as R
from basket.cart._policy import MergePolicy
from basket.cart._types import CartLine, LineKey, MergeOutcome, StockConstraint


def stock_ceilings(stock: Iterable[StockConstraint]) -> dict[LineKey, int]:
    """Ceiling per line key. Duplicate constraints keep the lowest."""
    ceilings: dict[LineKey, int] = {}
    for constraint in stock:
        current = ceilings.get(constraint.key)
        if current is None or constraint.available_quantity < current:
            ceilings[constraint.key] = constraint.available_quantity
    return ceilings


def merge(
    guest: Iterable[CartLine],
    user: Iterable[CartLine],
    stock: Iterable[StockConstraint] = (),
    policy: MergePolicy | None = None,
) -> MergeOutcome:
    """
    Merge a guest cart into a user cart.

    Example:
        merge([CartLine("p1", None, 2)], [CartLine("p1", None, 3)]).lines
        # (CartLine("p1", None, 5),)

    Conflicting lines keep the earliest added_at. Lines without a stock
    constraint are only bounded by policy.line_cap.
    """
    policy = policy if policy is not None else MergePolicy()

    # Each side is normalized on its own first: duplicates inside one cart
    # are one line, not a conflict.
    merged = dict(R.hydrate(user))
    for key, guest_line in R.hydrate(guest).items():
        user_line = merged.get(key)
        if user_line is None:
            merged[key] = guest_line
            continue
        merged[key] = CartLine(
            user_line.product_id,
            user_line.variant_id,
            policy.combine(user_line.quantity, guest_line.quantity),
            min(user_line.added_at, guest_line.added_at),
        )

    ceilings = stock_ceilings(stock)
    clamped: set[LineKey] = set()
    dropped: set[LineKey] = set()
    kept: list[CartLine] = []

    for key, line in merged.items():
        limit = ceilings.get(key)
        if policy.line_cap is not None:
            limit = policy.line_cap if limit is None else min(limit, policy.line_cap)

        if limit is None or line.quantity <= limit:
            kept.append(line)
        elif limit == 0:
            dropped.add(key)
        else:
            clamped.add(key)
            kept.append(line.with_quantity(limit))

    kept.sort(key=R.ordering)
    return MergeOutcome(
        lines=tuple(kept),
        clamped=frozenset(clamped),
        dropped=frozenset(dropped),
    )


__all__ = ("merge", "stock_ceilings")
