"""
Reconciliation engine — one-time guest → user cart merge per guest token.

    ledger.get ─► stock lookup ─► merge ─► ledger.claim ─► commit ─► ledger.complete
                       │                       │              │
                       ▼                       ▼              ▼
               StockLookupError      AlreadyMergedError   release + MutationError

Nothing is written before the claim; a failed commit releases it.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from combinators import lift as L
from kungfu import Error, LazyCoroResult, Ok, Result

from basket.cache._mutation import MutationExecutor
from basket.cache._tags import CART, Tag
from basket.cache._types import MutationError
from basket.cart._ledger import ConsumptionLedger, MemoryLedger
from basket.cart._merge import merge
from basket.cart._policy import MergePolicy
from basket.cart._storage import GuestCartStorage
from basket.cart._types import (
    AlreadyMergedError,
    CartLine,
    GuestCart,
    LineKey,
    MergeResult,
    MergeState,
    ReconcileError,
    StockConstraint,
    StockLookupError,
)

logger = logging.getLogger("basket.cart")


# ═══════════════════════════════════════════════════════════════════════════════
# Collaborators
# ═══════════════════════════════════════════════════════════════════════════════


@runtime_checkable
class StockSource(Protocol):
    """Inventory lookup for the lines about to be merged."""

    async def lookup(self, keys: frozenset[LineKey]) -> Iterable[StockConstraint]: ...


type Stock = Iterable[StockConstraint] | StockSource
type Commit = Callable[[tuple[CartLine, ...]], Awaitable[object]]


# ═══════════════════════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class ReconciliationEngine:
    """
    Compiled reconciler.

    Example:
        match await engine.reconcile(guest, user_lines, stock):
            case Ok(merged):
                render(merged.lines)
            case Error(AlreadyMergedError()):
                pass  # keep the user cart
            case Error(e):
                show_error(e)
    """

    mutations: MutationExecutor
    ledger: ConsumptionLedger
    policy: MergePolicy
    commit: Commit | None = None
    guest_storage: GuestCartStorage | None = None
    invalidates: frozenset[Tag] = frozenset({CART})

    def reconcile(
        self,
        guest: GuestCart,
        user_cart: Iterable[CartLine],
        stock: Stock = (),
    ) -> LazyCoroResult[MergeResult, ReconcileError]:
        user_lines = tuple(user_cart)

        async def execute() -> Result[MergeResult, ReconcileError]:
            token = guest.token

            match await self.ledger.get(token):
                case Ok(record) if record is not None:
                    logger.info("Guest cart %s already %s", token, record.state.name.lower())
                    return Error(AlreadyMergedError(token, record.lines))
                case Ok(_):
                    pass
                case Error(e):
                    return Error(e)

            keys = frozenset(line.key for line in (*guest.lines, *user_lines))
            match await self._lookup(stock, keys):
                case Ok(constraints):
                    pass
                case Error(e):
                    logger.warning("Stock lookup failed for guest cart %s: %s", token, e.cause)
                    return Error(e)

            outcome = merge(guest.lines, user_lines, constraints, self.policy)

            match await self.ledger.claim(token):
                case Ok(True):
                    pass
                case Ok(False):
                    return Error(AlreadyMergedError(token))
                case Error(e):
                    return Error(e)

            match await self._commit(outcome.lines):
                case Ok(invalidated):
                    pass
                case Error(e):
                    match await self.ledger.release(token):
                        case Error(release_error):
                            logger.error(
                                "Could not release claim on guest cart %s: %s",
                                token,
                                release_error,
                            )
                        case _:
                            pass
                    logger.warning("Commit failed for guest cart %s: %s", token, e.cause)
                    return Error(e)

            # The cart is committed at this point; a stuck MERGING record
            # still blocks a second merge.
            match await self.ledger.complete(token, outcome.lines):
                case Error(e):
                    logger.error("Could not record merge of guest cart %s: %s", token, e)
                case _:
                    pass

            if self.guest_storage is not None:
                await self._discard_guest(self.guest_storage, token)

            logger.info(
                "Merged guest cart %s: %d lines, %d clamped, %d dropped",
                token,
                len(outcome.lines),
                len(outcome.clamped),
                len(outcome.dropped),
            )
            return Ok(
                MergeResult(
                    token=token,
                    lines=outcome.lines,
                    clamped=outcome.clamped,
                    dropped=outcome.dropped,
                    invalidated=invalidated,
                )
            )

        return LazyCoroResult(execute)

    async def state(self, token: str) -> MergeState:
        """Ledger state of a token. Unreadable ledger counts as UNMERGED."""
        match await self.ledger.get(token):
            case Ok(record) if record is not None:
                return record.state
            case Ok(_):
                return MergeState.UNMERGED
            case Error(e):
                logger.warning("Could not read ledger for %s: %s", token, e)
                return MergeState.UNMERGED

    async def _lookup(
        self, stock: Stock, keys: frozenset[LineKey]
    ) -> Result[tuple[StockConstraint, ...], StockLookupError]:
        async def load() -> tuple[StockConstraint, ...]:
            if isinstance(stock, StockSource):
                return tuple(await stock.lookup(keys))
            # Lazy iterables may raise while being drained
            return tuple(stock)

        return await L.catching_async(load, on_error=StockLookupError)

    async def _discard_guest(self, storage: GuestCartStorage, token: str) -> None:
        match await storage.current_token():
            case Ok(current) if current == token:
                pass
            case Ok(current):
                logger.info("Guest session %s replaced by %s, keeping it", token, current)
                return
            case Error(e):
                logger.warning("Could not read guest session for %s: %s", token, e)
                return

        match await storage.discard():
            case Error(e):
                logger.warning("Could not discard guest cart %s: %s", token, e)
            case _:
                pass

    async def _commit(
        self, lines: tuple[CartLine, ...]
    ) -> Result[frozenset[str], MutationError]:
        commit = self.commit
        if commit is None:
            invalidated = self.mutations.invalidate_tags(self.invalidates)
            return Ok(frozenset(invalidated))

        match await self.mutations.mutate(lambda: commit(lines), self.invalidates):
            case Ok(written):
                return Ok(written.invalidated)
            case Error(e):
                return Error(e)


# ═══════════════════════════════════════════════════════════════════════════════
# Builder
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class Reconciler:
    """
    Fluent reconciliation builder.
    """

    _mutations: MutationExecutor
    _ledger: ConsumptionLedger | None
    _policy: MergePolicy
    _commit: Commit | None
    _guest_storage: GuestCartStorage | None

    def ledger(self, ledger: ConsumptionLedger) -> Reconciler:
        """Set consumption ledger."""
        return Reconciler(
            _mutations=self._mutations,
            _ledger=ledger,
            _policy=self._policy,
            _commit=self._commit,
            _guest_storage=self._guest_storage,
        )

    def policy(self, p: MergePolicy) -> Reconciler:
        """Set merge policy."""
        return Reconciler(
            _mutations=self._mutations,
            _ledger=self._ledger,
            _policy=p,
            _commit=self._commit,
            _guest_storage=self._guest_storage,
        )

    def commit(self, fn: Commit) -> Reconciler:
        """Set the backend write for merged lines."""
        return Reconciler(
            _mutations=self._mutations,
            _ledger=self._ledger,
            _policy=self._policy,
            _commit=fn,
            _guest_storage=self._guest_storage,
        )

    def guest_storage(self, storage: GuestCartStorage) -> Reconciler:
        """Discard the guest cart from this storage after a merge."""
        return Reconciler(
            _mutations=self._mutations,
            _ledger=self._ledger,
            _policy=self._policy,
            _commit=self._commit,
            _guest_storage=storage,
        )

    def build(self) -> ReconciliationEngine:
        """Build executable."""
        ledger: ConsumptionLedger = self._ledger if self._ledger is not None else MemoryLedger()
        return ReconciliationEngine(
            mutations=self._mutations,
            ledger=ledger,
            policy=self._policy,
            commit=self._commit,
            guest_storage=self._guest_storage,
        )


def reconciler(mutations: MutationExecutor) -> Reconciler:
    """
    Create a reconciliation builder.

    Example:
        engine = (
            reconciler(client.mutations)
            .ledger(StorageLedger(storage))
            .policy(MergePolicy().with_line_cap(999))
            .commit(api.replace_cart)
            .guest_storage(GuestCartStorage(storage))
            .build()
        )
    """
    return Reconciler(
        _mutations=mutations,
        _ledger=None,
        _policy=MergePolicy(),
        _commit=None,
        _guest_storage=None,
    )


__all__ = (
    "StockSource",
    "Stock",
    "Commit",
    "ReconciliationEngine",
    "Reconciler",
    "reconciler",
)
