"""
Tests for the pure guest → user cart merge.
"""

import pytest

from basket.cart import (
    MAX,
    CartLine,
    LineKey,
    MergePolicy,
    StockConstraint,
    merge,
    stock_ceilings,
)


class TestAdditive:
    """Default strategy: user + guest."""

    def test_spec_example(self):
        outcome = merge([CartLine("p1", None, 2)], [CartLine("p1", None, 3)])

        assert outcome.lines == (CartLine("p1", None, 5),)
        assert outcome.clamped == frozenset()
        assert outcome.dropped == frozenset()

    def test_disjoint_lines_are_kept(self):
        outcome = merge([CartLine("p1", None, 1)], [CartLine("p2", None, 1)])

        assert {line.key for line in outcome.lines} == {LineKey("p1"), LineKey("p2")}

    def test_variants_do_not_collide(self):
        outcome = merge([CartLine("p1", "red", 1)], [CartLine("p1", "blue", 1)])

        assert len(outcome.lines) == 2

    def test_quantity_is_sum_without_stock(self):
        guest = [CartLine("p1", None, 4), CartLine("p2", "s", 1)]
        user = [CartLine("p1", None, 6), CartLine("p2", "s", 2)]

        outcome = merge(guest, user)

        assert {l.key: l.quantity for l in outcome.lines} == {
            LineKey("p1"): 10,
            LineKey("p2", "s"): 3,
        }

    def test_duplicates_within_one_cart_are_coalesced(self):
        outcome = merge([CartLine("p1", None, 1), CartLine("p1", None, 2)], [])

        assert outcome.lines == (CartLine("p1", None, 3),)

    def test_empty_carts(self):
        assert merge([], []).lines == ()

    def test_conflict_keeps_earliest_added_at(self):
        outcome = merge([CartLine("p1", None, 1, added_at=3.0)], [CartLine("p1", None, 1, added_at=9.0)])

        assert outcome.lines[0].added_at == 3.0

    def test_inputs_are_untouched(self):
        guest = [CartLine("p1", None, 2)]
        user = [CartLine("p1", None, 3)]

        merge(guest, user, [StockConstraint("p1", None, 1)])

        assert guest == [CartLine("p1", None, 2)]
        assert user == [CartLine("p1", None, 3)]


class TestMax:
    def test_max_strategy(self):
        policy = MergePolicy().with_strategy(MAX)

        outcome = merge([CartLine("p1", None, 2)], [CartLine("p1", None, 3)], policy=policy)

        assert outcome.lines == (CartLine("p1", None, 3),)


class TestStock:
    """Clamping and dropping."""

    def test_clamped_to_available(self):
        outcome = merge(
            [CartLine("p1", None, 4)],
            [CartLine("p1", None, 4)],
            [StockConstraint("p1", None, 5)],
        )

        assert outcome.lines == (CartLine("p1", None, 5),)
        assert outcome.clamped == frozenset({LineKey("p1")})

    def test_zero_stock_drops_line(self):
        outcome = merge(
            [CartLine("p1", None, 1)],
            [CartLine("p2", None, 1)],
            [StockConstraint("p1", None, 0)],
        )

        assert [l.key for l in outcome.lines] == [LineKey("p2")]
        assert outcome.dropped == frozenset({LineKey("p1")})

    def test_constraint_is_per_variant(self):
        outcome = merge(
            [CartLine("p1", "red", 3)],
            [CartLine("p1", None, 3)],
            [StockConstraint("p1", "red", 1)],
        )

        assert {l.key: l.quantity for l in outcome.lines} == {
            LineKey("p1"): 3,
            LineKey("p1", "red"): 1,
        }

    def test_under_stock_is_unchanged(self):
        outcome = merge([CartLine("p1", None, 1)], [], [StockConstraint("p1", None, 10)])

        assert outcome.lines == (CartLine("p1", None, 1),)
        assert outcome.clamped == frozenset()

    def test_every_line_within_stock(self):
        guest = [CartLine(f"p{i}", None, i + 1) for i in range(6)]
        user = [CartLine(f"p{i}", None, 6 - i) for i in range(6)]
        stock = [StockConstraint(f"p{i}", None, i) for i in range(6)]

        outcome = merge(guest, user, stock)
        ceilings = stock_ceilings(stock)

        assert all(l.quantity <= ceilings[l.key] for l in outcome.lines)
        assert LineKey("p0") in outcome.dropped

    def test_duplicate_constraints_keep_lowest(self):
        ceilings = stock_ceilings([StockConstraint("p1", None, 5), StockConstraint("p1", None, 2)])

        assert ceilings == {LineKey("p1"): 2}

    def test_line_cap_bounds_unconstrained_lines(self):
        policy = MergePolicy().with_line_cap(999)

        outcome = merge([CartLine("p1", None, 600)], [CartLine("p1", None, 600)], policy=policy)

        assert outcome.lines == (CartLine("p1", None, 999),)
        assert outcome.clamped == frozenset({LineKey("p1")})

    def test_line_cap_must_be_positive(self):
        with pytest.raises(ValueError):
            MergePolicy(line_cap=0)


class TestOrdering:
    def test_sorted_by_added_at_then_product_then_variant(self):
        guest = [
            CartLine("b", None, 1, added_at=2.0),
            CartLine("a", "x", 1, added_at=2.0),
        ]
        user = [
            CartLine("c", None, 1, added_at=1.0),
            CartLine("a", None, 1, added_at=2.0),
        ]

        outcome = merge(guest, user)

        assert [l.key for l in outcome.lines] == [
            LineKey("c"),
            LineKey("a"),
            LineKey("a", "x"),
            LineKey("b"),
        ]

    def test_deterministic(self):
        guest = [CartLine("p2", None, 1), CartLine("p1", None, 1)]
        user = [CartLine("p3", None, 1)]

        assert merge(guest, user) == merge(list(reversed(guest)), user)
