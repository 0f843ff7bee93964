"""
Query executor — deduplicated reads into the entry store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import timedelta
from typing import Any

from combinators import lift as L
from kungfu import Error, LazyCoroResult, Ok, Result

from basket._types import Fetch
from basket.cache._endpoint import QueryEndpoint
from basket.cache._store import EntryStore
from basket.cache._tags import Tag
from basket.cache._types import CacheEntry, EntryStatus, FetchError, QueryResult

logger = logging.getLogger("basket.cache")

type TagsFor[T] = Iterable[Tag] | Callable[[T], Iterable[Tag]]
"""Tags known up front, or computed from the fetched value."""


def _tags_for[T](tags: TagsFor[T], value: T) -> frozenset[Tag]:
    if callable(tags):
        return frozenset(tags(value))
    return frozenset(tags)


# ═══════════════════════════════════════════════════════════════════════════════
# Query Executor
# ═══════════════════════════════════════════════════════════════════════════════


class QueryExecutor:
    """
    Runs fetches by key.

    At most one fetch per key is outstanding. Callers that arrive while it
    runs await the same task and get the same Result, value or FetchError.

    No retries: a rejection is surfaced and the caller decides.

    Example:
        result = await queries.query("getCart", [CART], api.get_cart)
        match result:
            case Ok(r):
                render(r.value)
            case Error(e):
                show_retry(e)
    """

    def __init__(self, store: EntryStore) -> None:
        self._store = store

    @property
    def store(self) -> EntryStore:
        return self._store

    def query[T](
        self,
        key: str,
        tags: TagsFor[T],
        fetch: Fetch[T],
        *,
        freshness: timedelta | None = None,
    ) -> LazyCoroResult[QueryResult[T], FetchError]:
        """
        Read key, fetching it if missing, stale or invalidated.

        freshness overrides CachePolicy.freshness for this call.
        """
        window = freshness if freshness is not None else self._store.policy.freshness
        return self._query(key, tags, fetch, window, force=False)

    def refetch[T](
        self,
        key: str,
        tags: TagsFor[T],
        fetch: Fetch[T],
    ) -> LazyCoroResult[QueryResult[T], FetchError]:
        """Manual refresh. Ignores freshness but still joins an in-flight fetch."""
        return self._query(key, tags, fetch, None, force=True)

    def run[A, T](
        self,
        endpoint: QueryEndpoint[A, T],
        args: A,
        *,
        freshness: timedelta | None = None,
    ) -> LazyCoroResult[QueryResult[T], FetchError]:
        """Query through a declared endpoint."""
        return self.query(
            endpoint.key(args),
            endpoint.tags(args),
            lambda: endpoint.fetch(args),
            freshness=freshness,
        )

    def _query[T](
        self,
        key: str,
        tags: TagsFor[T],
        fetch: Fetch[T],
        window: timedelta | None,
        *,
        force: bool,
    ) -> LazyCoroResult[QueryResult[T], FetchError]:
        store = self._store

        async def execute() -> Result[QueryResult[T], FetchError]:
            while (task := store.inflight(key)) is not None:
                if not store.is_stale_inflight(key):
                    logger.debug("Joining in-flight fetch for %r", key)
                    return await asyncio.shield(task)
                # Started before a write landed; its result predates the write
                logger.debug("Waiting out stale fetch for %r", key)
                await asyncio.wait({task})

            entry = store.get(key)
            if not force and entry is not None and self._is_fresh(entry, window):
                logger.debug("Cache hit for %r", key)
                return Ok(
                    QueryResult(
                        value=entry.value,
                        key=key,
                        from_cache=True,
                        fetched_at=entry.fetched_at,
                    )
                )

            store.put(key, status=EntryStatus.PENDING)
            task = asyncio.create_task(self._fetch(key, tags, fetch))
            store.track(key, task)
            return await asyncio.shield(task)

        return LazyCoroResult(execute)

    def _is_fresh(self, entry: CacheEntry[Any], window: timedelta | None) -> bool:
        if entry.status != EntryStatus.FULFILLED or entry.fetched_at is None:
            return False
        if window is None:
            return True
        return self._store.now() - entry.fetched_at <= window.total_seconds()

    async def _fetch[T](
        self,
        key: str,
        tags: TagsFor[T],
        fetch: Fetch[T],
    ) -> Result[QueryResult[T], FetchError]:
        store = self._store

        async def load() -> tuple[T, frozenset[Tag]]:
            value = await fetch()
            return value, _tags_for(tags, value)

        result = await L.catching_async(
            load,
            on_error=lambda e: FetchError(key, e),
        )

        match result:
            case Ok((value, resolved_tags)):
                now = store.now()
                store.put(
                    key,
                    status=EntryStatus.FULFILLED,
                    value=value,
                    error=None,
                    fetched_at=now,
                )
                store.index.attach(key, resolved_tags)
                store.settle(key)
                return Ok(QueryResult(value=value, key=key, from_cache=False, fetched_at=now))
            case Error(error):
                # Previous tags stay attached so a retry is still invalidated
                store.put(key, status=EntryStatus.REJECTED, error=error)
                store.settle(key)
                logger.warning("Fetch for %r failed: %s", key, error.cause)
                return Error(error)


__all__ = ("QueryExecutor", "TagsFor")
