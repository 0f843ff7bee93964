"""
Cart reducer — pure operations over a normalized cart.

A cart is a mapping LineKey → CartLine. Every operation returns a new
mapping and leaves its input alone.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from basket.cart._types import CartLine, LineKey

type Cart = Mapping[LineKey, CartLine]


def ordering(line: CartLine) -> tuple[float, str, bool, str]:
    """Sort key: earliest added first, then product, base product before variants."""
    return (
        line.added_at,
        line.product_id,
        line.variant_id is not None,
        line.variant_id or "",
    )


def _combined(existing: CartLine | None, line: CartLine) -> CartLine:
    if existing is None:
        return line
    return CartLine(
        existing.product_id,
        existing.variant_id,
        existing.quantity + line.quantity,
        min(existing.added_at, line.added_at),
    )


def hydrate(items: Iterable[CartLine]) -> Cart:
    """Build a cart from lines, coalescing duplicates additively."""
    cart: dict[LineKey, CartLine] = {}
    for line in items:
        cart[line.key] = _combined(cart.get(line.key), line)
    return cart


def add(cart: Cart, line: CartLine) -> Cart:
    """Add a line; an existing line for the same key grows by line.quantity."""
    result = dict(cart)
    result[line.key] = _combined(result.get(line.key), line)
    return result


def adjust(cart: Cart, key: LineKey, delta: int, added_at: float = 0.0) -> Cart:
    """Change a line's quantity by delta. Reaching zero or below removes it."""
    existing = cart.get(key)
    current = existing.quantity if existing is not None else 0
    if existing is not None:
        added_at = existing.added_at
    return set_quantity(cart, key, current + delta, added_at)


def set_quantity(cart: Cart, key: LineKey, quantity: int, added_at: float = 0.0) -> Cart:
    """Set a line's quantity. Zero or below removes the line."""
    if quantity <= 0:
        return remove(cart, key)
    result = dict(cart)
    existing = result.get(key)
    if existing is not None:
        result[key] = existing.with_quantity(quantity)
    else:
        result[key] = CartLine(key.product_id, key.variant_id, quantity, added_at)
    return result


def remove(cart: Cart, key: LineKey) -> Cart:
    if key not in cart:
        return cart
    return {k: v for k, v in cart.items() if k != key}


def clear() -> Cart:
    return {}


# ═══════════════════════════════════════════════════════════════════════════════
# Selectors
# ═══════════════════════════════════════════════════════════════════════════════


def lines(cart: Cart) -> tuple[CartLine, ...]:
    """Lines in display order."""
    return tuple(sorted(cart.values(), key=ordering))


def item_count(cart: Cart) -> int:
    return sum(line.quantity for line in cart.values())


def find(cart: Cart, product_id: str, variant_id: str | None = None) -> CartLine | None:
    return cart.get(LineKey(product_id, variant_id))


def quantity_of(cart: Cart, product_id: str, variant_id: str | None = None) -> int:
    line = find(cart, product_id, variant_id)
    return line.quantity if line is not None else 0


__all__ = (
    "Cart",
    "ordering",
    "hydrate",
    "add",
    "adjust",
    "set_quantity",
    "remove",
    "clear",
    "lines",
    "item_count",
    "find",
    "quantity_of",
)
