"""
Cache — tag-invalidated request cache.

    from basket import cache as C

    async with C.cache_client().build() as client:
        r = await client.query("getCart", [C.CART], api.get_cart)
        await client.mutate(lambda: api.add_to_cart(pid, 1), invalidates=[C.CART])

Architecture:

    query ──► QueryExecutor ──► EntryStore ◄── MutationExecutor ◄── mutate
                                    │                 │
                                    └──► TagIndex ◄───┘
"""

from __future__ import annotations

from basket.cache._tags import (
    Tag,
    TagIndex,
    CART,
    CART_ITEM,
    PRODUCT,
    ORDER,
    USER,
)
from basket.cache._types import (
    EntryStatus,
    CacheEntry,
    QueryResult,
    MutationResult,
    OptimisticPatch,
    PatchedValue,
    UndoToken,
    FetchError,
    MutationError,
)
from basket.cache._policy import CachePolicy
from basket.cache._store import EntryStore, Subscription, Listener
from basket.cache._endpoint import (
    make_key,
    QueryEndpoint,
    MutationEndpoint,
    query_endpoint,
    mutation_endpoint,
)
from basket.cache._query import QueryExecutor, TagsFor
from basket.cache._mutation import MutationExecutor
from basket.cache._client import CacheClient, CacheClientBuilder, cache_client

__all__ = (
    # Tags
    "Tag",
    "TagIndex",
    "CART",
    "CART_ITEM",
    "PRODUCT",
    "ORDER",
    "USER",
    # Types
    "EntryStatus",
    "CacheEntry",
    "QueryResult",
    "MutationResult",
    "OptimisticPatch",
    "PatchedValue",
    "UndoToken",
    "FetchError",
    "MutationError",
    # Policy
    "CachePolicy",
    # Store
    "EntryStore",
    "Subscription",
    "Listener",
    # Endpoints
    "make_key",
    "QueryEndpoint",
    "MutationEndpoint",
    "query_endpoint",
    "mutation_endpoint",
    # Executors
    "QueryExecutor",
    "TagsFor",
    "MutationExecutor",
    # Client
    "CacheClient",
    "CacheClientBuilder",
    "cache_client",
)
