"""
Merge policy — how conflicting guest and user lines combine.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, auto


class MergeStrategy(Enum):
    """
    Conflict rule for a (product, variant) present in both carts.

    ADDITIVE: user + guest. The guest may have added items after the user
              cart snapshot was taken, so guest intent counts as an increment.
    MAX: max(user, guest). Treats both carts as the same intent seen twice.

    Note: Which one is right is a product decision. ADDITIVE is the default
    because that is what the storefront's guest-cart sync does today.
    """

    ADDITIVE = auto()
    MAX = auto()


ADDITIVE = MergeStrategy.ADDITIVE
MAX = MergeStrategy.MAX


@dataclass(frozen=True, slots=True)
class MergePolicy:
    """
    Merge configuration.

    Example:
        policy = MergePolicy().with_strategy(MAX).with_line_cap(999)

    line_cap: upper bound for every line, including lines without a
    stock constraint. None = no cap.
    """

    strategy: MergeStrategy = MergeStrategy.ADDITIVE
    line_cap: int | None = None

    def __post_init__(self) -> None:
        if self.line_cap is not None and self.line_cap < 1:
            raise ValueError("line_cap must be positive")

    def with_strategy(self, strategy: MergeStrategy) -> MergePolicy:
        return replace(self, strategy=strategy)

    def with_line_cap(self, cap: int | None) -> MergePolicy:
        return replace(self, line_cap=cap)

    def combine(self, user_qty: int, guest_qty: int) -> int:
        if self.strategy == MergeStrategy.MAX:
            return max(user_qty, guest_qty)
        return user_qty + guest_qty


__all__ = ("MergeStrategy", "ADDITIVE", "MAX", "MergePolicy")
