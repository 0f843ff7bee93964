"""
Endpoints — declarative queries and mutations over a fetch function.

Key derivation follows one rule: endpoint name plus canonical JSON of the
arguments, so equal arguments always map to the same entry.
"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from basket.cache._tags import Tag

# ═══════════════════════════════════════════════════════════════════════════════
# Keys
# ═══════════════════════════════════════════════════════════════════════════════


def _plain(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    return str(value)


def make_key(endpoint: str, params: Any = None) -> str:
    """
    Stable cache key for an endpoint call.

    Example:
        make_key("getCart")                        # 'getCart'
        make_key("getProduct", {"id": 7})          # 'getProduct({"id":7})'
        make_key("search", {"q": "x", "page": 2})  # keys are sorted
    """
    if params is None:
        return endpoint
    if dataclasses.is_dataclass(params) and not isinstance(params, type):
        params = dataclasses.asdict(params)
    encoded = json.dumps(
        params,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_plain,
    )
    return f"{endpoint}({encoded})"


# ═══════════════════════════════════════════════════════════════════════════════
# Tag Providers
# ═══════════════════════════════════════════════════════════════════════════════

type Provides[A, T] = Sequence[Tag] | Callable[[A, T], Iterable[Tag]]
"""Static tags, or tags computed from the arguments and the fetched value."""

type Invalidates[A] = Sequence[Tag] | Callable[[A], Iterable[Tag]]


# ═══════════════════════════════════════════════════════════════════════════════
# Query Endpoint
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class QueryEndpoint[A, T]:
    """
    Named read.

    Example:
        get_product = query_endpoint(
            "getProduct",
            lambda pid: api.product(pid),
            provides=lambda pid, _: [PRODUCT.with_id(pid)],
        )
        result = await client.queries.run(get_product, 7)
    """

    name: str
    fetch: Callable[[A], Awaitable[T]]
    provides: Provides[A, T] = ()

    def key(self, args: A) -> str:
        return make_key(self.name, args)

    def tags(self, args: A) -> Callable[[T], frozenset[Tag]]:
        provides = self.provides
        if callable(provides):
            return lambda value: frozenset(provides(args, value))
        static = frozenset(provides)
        return lambda _value: static


# ═══════════════════════════════════════════════════════════════════════════════
# Mutation Endpoint
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class MutationEndpoint[A, T]:
    """
    Named write.

    Example:
        add_to_cart = mutation_endpoint(
            "addToCart",
            lambda req: api.add_to_cart(req),
            invalidates=[CART],
        )
    """

    name: str
    fetch: Callable[[A], Awaitable[T]]
    invalidates: Invalidates[A] = ()

    def tags(self, args: A) -> frozenset[Tag]:
        invalidates = self.invalidates
        if callable(invalidates):
            return frozenset(invalidates(args))
        return frozenset(invalidates)


# ═══════════════════════════════════════════════════════════════════════════════
# Entry Points
# ═══════════════════════════════════════════════════════════════════════════════


def query_endpoint[A, T](
    name: str,
    fetch: Callable[[A], Awaitable[T]],
    *,
    provides: Provides[A, T] = (),
) -> QueryEndpoint[A, T]:
    """Declare a read endpoint."""
    return QueryEndpoint(name=name, fetch=fetch, provides=provides)


def mutation_endpoint[A, T](
    name: str,
    fetch: Callable[[A], Awaitable[T]],
    *,
    invalidates: Invalidates[A] = (),
) -> MutationEndpoint[A, T]:
    """Declare a write endpoint."""
    return MutationEndpoint(name=name, fetch=fetch, invalidates=invalidates)


__all__ = (
    "make_key",
    "Provides",
    "Invalidates",
    "QueryEndpoint",
    "MutationEndpoint",
    "query_endpoint",
    "mutation_endpoint",
)
