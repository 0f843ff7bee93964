"""
Mutation executor — writes followed by tag invalidation.

Optimistic variant, in three explicit steps:

    token = store.patch(keys, recipe)     # snapshot + apply
    result = await fetch()
    on failure: store.undo(token)         # restore, then surface error

Invalidation only happens after a successful write, never partially.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from combinators import lift as L
from kungfu import Error, LazyCoroResult, Ok, Result

from basket._types import Fetch
from basket.cache._endpoint import MutationEndpoint
from basket.cache._store import EntryStore
from basket.cache._tags import Tag
from basket.cache._types import (
    MutationError,
    MutationResult,
    OptimisticPatch,
    UndoToken,
)

logger = logging.getLogger("basket.cache")


class MutationExecutor:
    """
    Runs writes and invalidates dependent entries.

    Example:
        result = await mutations.mutate(
            lambda: api.add_to_cart(product_id, 1),
            invalidates=[CART],
            optimistic=OptimisticPatch(lambda cart: cart.with_line(line)),
        )
    """

    def __init__(self, store: EntryStore) -> None:
        self._store = store

    @property
    def store(self) -> EntryStore:
        return self._store

    def mutate[T](
        self,
        fetch: Fetch[T],
        invalidates: Iterable[Tag],
        *,
        optimistic: OptimisticPatch | None = None,
    ) -> LazyCoroResult[MutationResult[T], MutationError]:
        """
        Run fetch; on success invalidate every key under invalidates.

        The invalidation is applied before the result is delivered, so a
        query issued after this resolves sees the stale-pending state.
        """
        store = self._store
        tags = frozenset(invalidates)

        async def execute() -> Result[MutationResult[T], MutationError]:
            affected = store.index.resolve(tags)
            token = UndoToken()
            if optimistic is not None:
                targets = optimistic.keys if optimistic.keys is not None else affected

                async def apply() -> UndoToken:
                    return store.patch(targets, optimistic.recipe)

                patched = await L.catching_async(
                    apply,
                    on_error=lambda e: MutationError(cause=e, tags=tags, keys=frozenset(affected)),
                )
                match patched:
                    case Ok(t):
                        token = t
                    case Error(err):
                        logger.warning("Optimistic recipe failed: %s", err.cause)
                        return Error(err)

            written = await L.catching_async(fetch, on_error=lambda e: e)
            match written:
                case Ok(value):
                    invalidated = self._invalidate(tags)
                    return Ok(MutationResult(value=value, invalidated=frozenset(invalidated)))
                case Error(cause):
                    rolled_back = store.undo(token) if token else frozenset()
                    if rolled_back:
                        logger.warning(
                            "Mutation failed, rolled back %d optimistic entries: %s",
                            len(rolled_back),
                            cause,
                        )
                    else:
                        logger.warning("Mutation failed: %s", cause)
                    return Error(
                        MutationError(
                            cause=cause,
                            tags=tags,
                            keys=frozenset(affected) | token.keys,
                            rolled_back=rolled_back,
                        )
                    )

        return LazyCoroResult(execute)

    def invalidate_tags(self, tags: Iterable[Tag]) -> set[str]:
        """Invalidation path without a write. Returns the keys invalidated."""
        return self._invalidate(frozenset(tags))

    def run[A, T](
        self,
        endpoint: MutationEndpoint[A, T],
        args: A,
        *,
        optimistic: OptimisticPatch | None = None,
    ) -> LazyCoroResult[MutationResult[T], MutationError]:
        """Mutate through a declared endpoint."""
        return self.mutate(
            lambda: endpoint.fetch(args),
            endpoint.tags(args),
            optimistic=optimistic,
        )

    def _invalidate(self, tags: frozenset[Tag]) -> set[str]:
        keys = self._store.index.resolve(tags)
        invalidated = {key for key in sorted(keys) if self._store.invalidate(key)}
        if tags:
            logger.info(
                "Invalidated %d entries for tags %s",
                len(invalidated),
                ", ".join(sorted(str(t) for t in tags)),
            )
        return invalidated


__all__ = ("MutationExecutor",)
