"""
Cart types — lines, stock, merge outcome and errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import NamedTuple

from basket.cache._types import MutationError
from basket.storage._kv import StorageError

# ═══════════════════════════════════════════════════════════════════════════════
# Line Identity
# ═══════════════════════════════════════════════════════════════════════════════


class LineKey(NamedTuple):
    """One line per (product, variant) in a cart. variant None = base product."""

    product_id: str
    variant_id: str | None = None

    def __str__(self) -> str:
        if self.variant_id is None:
            return self.product_id
        return f"{self.product_id}/{self.variant_id}"


# ═══════════════════════════════════════════════════════════════════════════════
# Cart Line
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartLine:
    """
    A product (or variant) with a positive quantity.

    added_at is a clock timestamp and orders lines in merged output.
    """

    product_id: str
    variant_id: str | None
    quantity: int
    added_at: float = 0.0

    def __post_init__(self) -> None:
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"quantity must be an int, got {self.quantity!r}")
        if self.quantity < 1:
            raise ValueError(f"quantity must be positive, got {self.quantity}")

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, self.variant_id)

    def with_quantity(self, quantity: int) -> CartLine:
        return CartLine(self.product_id, self.variant_id, quantity, self.added_at)


@dataclass(frozen=True, slots=True)
class GuestCart:
    """Guest cart snapshot, keyed by the anonymous session token."""

    token: str
    lines: tuple[CartLine, ...] = ()


# ═══════════════════════════════════════════════════════════════════════════════
# Stock
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StockConstraint:
    """Ceiling on a line's quantity. Read-only input from inventory."""

    product_id: str
    variant_id: str | None
    available_quantity: int

    def __post_init__(self) -> None:
        if self.available_quantity < 0:
            raise ValueError(
                f"available_quantity must not be negative, got {self.available_quantity}"
            )

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, self.variant_id)


# ═══════════════════════════════════════════════════════════════════════════════
# Merge State — Per Guest Token
# ═══════════════════════════════════════════════════════════════════════════════


class MergeState(Enum):
    """
    Reconciliation state of a guest token.

    Lifecycle:
        UNMERGED → MERGING → MERGED (terminal)
                           → UNMERGED (commit failed, retry allowed)
    """

    UNMERGED = auto()
    MERGING = auto()
    MERGED = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Result Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class MergeOutcome:
    """Output of the pure merge."""

    lines: tuple[CartLine, ...]
    clamped: frozenset[LineKey] = frozenset()
    dropped: frozenset[LineKey] = frozenset()


@dataclass(frozen=True, slots=True)
class MergeResult:
    """Successful reconciliation."""

    token: str
    lines: tuple[CartLine, ...]
    clamped: frozenset[LineKey]
    dropped: frozenset[LineKey]
    invalidated: frozenset[str]


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True, eq=False)
class StockLookupError(Exception):
    """Inventory unavailable. The merge was aborted before any write."""

    cause: BaseException

    def __str__(self) -> str:
        return f"stock lookup failed: {self.cause}"


@dataclass(frozen=True, slots=True, eq=False)
class AlreadyMergedError(Exception):
    """
    Guest token already consumed (or being consumed right now).

    Non-fatal: carry on with the user cart. lines is the first merge's
    result when it is known.
    """

    token: str
    lines: tuple[CartLine, ...] | None = None

    def __str__(self) -> str:
        return f"guest cart {self.token!r} already merged"


type ReconcileError = AlreadyMergedError | StockLookupError | MutationError | StorageError


__all__ = (
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
)
