"""
Cache client — one object owning store, index, executors and the GC tick.

There is no module-level cache: build a client, pass it to whoever needs it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from kungfu import LazyCoroResult

from basket._types import Clock, Fetch
from basket.cache._mutation import MutationExecutor
from basket.cache._policy import CachePolicy
from basket.cache._query import QueryExecutor, TagsFor
from basket.cache._store import EntryStore, Listener, Subscription
from basket.cache._tags import Tag, TagIndex
from basket.cache._types import (
    CacheEntry,
    FetchError,
    MutationError,
    MutationResult,
    OptimisticPatch,
    QueryResult,
)

logger = logging.getLogger("basket.cache")


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Client
# ═══════════════════════════════════════════════════════════════════════════════


class CacheClient:
    """
    Request cache with explicit lifecycle.

    Example:
        async with cache_client().policy(policy).build() as client:
            cart = await client.query("getCart", [CART], api.get_cart)
    """

    def __init__(self, policy: CachePolicy, clock: Clock) -> None:
        self.policy = policy
        self.index = TagIndex()
        self.store = EntryStore(self.index, policy, clock)
        self.queries = QueryExecutor(self.store)
        self.mutations = MutationExecutor(self.store)
        self._gc_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._gc_task is not None and not self._gc_task.done()

    async def start(self) -> CacheClient:
        """Start the periodic GC sweep."""
        if not self.running:
            self._gc_task = asyncio.create_task(self._gc_loop())
        return self

    async def close(self) -> None:
        """Stop the sweep and drop every entry."""
        task, self._gc_task = self._gc_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.store.clear()

    async def __aenter__(self) -> CacheClient:
        return await self.start()

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # ── collaborator surface ─────────────────────────────────────────────────

    def query[T](
        self,
        key: str,
        tags: TagsFor[T],
        fetch: Fetch[T],
        *,
        freshness: timedelta | None = None,
    ) -> LazyCoroResult[QueryResult[T], FetchError]:
        return self.queries.query(key, tags, fetch, freshness=freshness)

    def mutate[T](
        self,
        fetch: Fetch[T],
        invalidates: Iterable[Tag],
        *,
        optimistic: OptimisticPatch | None = None,
    ) -> LazyCoroResult[MutationResult[T], MutationError]:
        return self.mutations.mutate(fetch, invalidates, optimistic=optimistic)

    def subscribe(self, key: str, on_invalidate: Listener | None = None) -> Subscription:
        return self.store.subscribe(key, on_invalidate)

    def get(self, key: str) -> CacheEntry[Any] | None:
        return self.store.get(key)

    async def _gc_loop(self) -> None:
        interval = self.policy.gc_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            self.store.gc()


# ═══════════════════════════════════════════════════════════════════════════════
# Builder
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class CacheClientBuilder:
    """Fluent cache client builder."""

    _policy: CachePolicy
    _clock: Clock

    def policy(self, p: CachePolicy) -> CacheClientBuilder:
        """Set cache policy."""
        return CacheClientBuilder(_policy=p, _clock=self._clock)

    def clock(self, c: Clock) -> CacheClientBuilder:
        """Set time source."""
        return CacheClientBuilder(_policy=self._policy, _clock=c)

    def build(self) -> CacheClient:
        """Build the client. Call start() or use it as an async context manager."""
        return CacheClient(self._policy, self._clock)


def cache_client() -> CacheClientBuilder:
    """
    Create cache client builder.

    Example:
        client = (
            cache_client()
            .policy(CachePolicy().with_retention(seconds=120))
            .build()
        )
        await client.start()
    """
    return CacheClientBuilder(_policy=CachePolicy(), _clock=time.time)


__all__ = ("CacheClient", "CacheClientBuilder", "cache_client")
