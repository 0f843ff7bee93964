"""
Entry store — normalized key → entry cache.

Single event loop, no threads: every method here is synchronous, so each
call is atomic with respect to other coroutines.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from basket._types import Clock, Recipe, Result
from basket.cache._policy import CachePolicy
from basket.cache._tags import TagIndex
from basket.cache._types import (
    CacheEntry,
    EntryStatus,
    FetchError,
    PatchedValue,
    UndoToken,
)

logger = logging.getLogger("basket.cache")

type Listener = Callable[[str], None]
"""Called with the key when its entry is invalidated."""

_UNSET: Any = object()


# ═══════════════════════════════════════════════════════════════════════════════
# Stored Entry — Internal Mutable State
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class _StoredEntry:
    """Internal mutable entry for EntryStore."""

    key: str
    created_at: float
    status: EntryStatus = EntryStatus.UNINITIALIZED
    value: Any = None
    error: FetchError | None = None
    fetched_at: float | None = None
    released_at: float | None = None
    listeners: dict[int, Listener | None] = field(default_factory=dict)

    def last_activity(self) -> float:
        return max(
            t
            for t in (self.created_at, self.fetched_at, self.released_at)
            if t is not None
        )

    def to_entry(self, index: TagIndex) -> CacheEntry[Any]:
        return CacheEntry(
            key=self.key,
            status=self.status,
            value=self.value,
            error=self.error,
            tags=index.tags_of(self.key),
            fetched_at=self.fetched_at,
            subscriber_count=len(self.listeners),
            created_at=self.created_at,
            released_at=self.released_at,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Subscription — Release Handle
# ═══════════════════════════════════════════════════════════════════════════════


class Subscription:
    """
    Handle returned by EntryStore.subscribe().

    release() is idempotent. Also a context manager:

        with store.subscribe(key):
            ...
    """

    __slots__ = ("_store", "_key", "_id", "_released")

    def __init__(self, store: EntryStore, key: str, sub_id: int) -> None:
        self._store = store
        self._key = key
        self._id = sub_id
        self._released = False

    @property
    def key(self) -> str:
        return self._key

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._store._release(self._key, self._id)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *args: object) -> None:
        self.release()


# ═══════════════════════════════════════════════════════════════════════════════
# Entry Store
# ═══════════════════════════════════════════════════════════════════════════════


class EntryStore:
    """
    Owns every cache entry.

    Collaborators only ever see CacheEntry snapshots. The tag index is
    passed in so that gc() can detach keys before removing them.

    Example:
        index = TagIndex()
        store = EntryStore(index, CachePolicy())
        store.put("getCart", status=EntryStatus.FULFILLED, value=cart)
        store.invalidate("getCart")
    """

    def __init__(
        self,
        index: TagIndex,
        policy: CachePolicy | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._index = index
        self._policy = policy if policy is not None else CachePolicy()
        self._clock = clock
        self._entries: dict[str, _StoredEntry] = {}
        self._inflight: dict[str, asyncio.Task[Result[Any, FetchError]]] = {}
        self._stale_on_arrival: set[str] = set()
        self._next_sub_id = 0

    @property
    def policy(self) -> CachePolicy:
        return self._policy

    @property
    def index(self) -> TagIndex:
        return self._index

    def now(self) -> float:
        return self._clock()

    # ── reads ────────────────────────────────────────────────────────────────

    def get(self, key: str) -> CacheEntry[Any] | None:
        stored = self._entries.get(key)
        if stored is None:
            return None
        return stored.to_entry(self._index)

    def keys(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ── writes ───────────────────────────────────────────────────────────────

    def put(
        self,
        key: str,
        *,
        status: EntryStatus | None = None,
        value: Any = _UNSET,
        error: FetchError | None = _UNSET,
        fetched_at: float | None = _UNSET,
    ) -> CacheEntry[Any]:
        """
        Merge a partial update into the entry, creating it if absent.

        Only the fields passed are touched.
        """
        stored = self._ensure(key)
        if status is not None:
            stored.status = status
        if value is not _UNSET:
            stored.value = value
        if error is not _UNSET:
            stored.error = error
        if fetched_at is not _UNSET:
            stored.fetched_at = fetched_at
        return stored.to_entry(self._index)

    def invalidate(self, key: str) -> bool:
        """
        Mark a settled entry stale and tell its subscribers.

        FULFILLED / REJECTED → PENDING, value and error kept.
        With a fetch in flight the entry is re-invalidated as soon as that
        fetch settles.
        Returns False if the entry is missing or UNINITIALIZED.
        """
        stored = self._entries.get(key)
        if stored is None:
            return False
        if key in self._inflight:
            # Whatever the running fetch returns may predate the write
            self._stale_on_arrival.add(key)
        elif stored.status in (EntryStatus.FULFILLED, EntryStatus.REJECTED):
            stored.status = EntryStatus.PENDING
        else:
            return False

        for listener in list(stored.listeners.values()):
            if listener is None:
                continue
            try:
                listener(key)
            except Exception:
                logger.exception("Invalidation listener for %r failed", key)
        return True

    def clear(self) -> None:
        """Drop every entry and cancel in-flight fetches."""
        for task in list(self._inflight.values()):
            task.cancel()
        self._inflight.clear()
        self._stale_on_arrival.clear()
        for key in list(self._entries):
            self._index.detach(key)
        self._entries.clear()

    # ── subscriptions ────────────────────────────────────────────────────────

    def subscribe(self, key: str, on_invalidate: Listener | None = None) -> Subscription:
        """
        Register interest in key.

        on_invalidate is called with the key whenever the entry is
        invalidated; the consumer is expected to query again.
        """
        stored = self._ensure(key)
        sub_id = self._next_sub_id
        self._next_sub_id += 1
        stored.listeners[sub_id] = on_invalidate
        return Subscription(self, key, sub_id)

    def _release(self, key: str, sub_id: int) -> None:
        stored = self._entries.get(key)
        if stored is None:
            return
        stored.listeners.pop(sub_id, None)
        if not stored.listeners:
            stored.released_at = self._clock()

    # ── in-flight fetches ────────────────────────────────────────────────────

    def inflight(self, key: str) -> asyncio.Task[Result[Any, FetchError]] | None:
        return self._inflight.get(key)

    def is_stale_inflight(self, key: str) -> bool:
        """True if the running fetch for key was invalidated after it started."""
        return key in self._inflight and key in self._stale_on_arrival

    def track(self, key: str, task: asyncio.Task[Result[Any, FetchError]]) -> None:
        """
        Remember the shared fetch for key until it settles.

        Note: The done callback only clears the slot if it still holds this
        task, a later fetch may already have replaced it.
        """
        self._inflight[key] = task

        def _done(t: asyncio.Task[Result[Any, FetchError]]) -> None:
            if self._inflight.get(key) is t:
                del self._inflight[key]
                self._stale_on_arrival.discard(key)

        task.add_done_callback(_done)

    def settle(self, key: str) -> None:
        """
        Drop the in-flight marker for key.

        Called from inside the fetch task itself, right before it returns,
        so that the marker is gone by the time any awaiting caller resumes.
        """
        if self._inflight.get(key) is asyncio.current_task():
            del self._inflight[key]
        if key in self._stale_on_arrival:
            self._stale_on_arrival.discard(key)
            self.invalidate(key)

    # ── optimistic patches ───────────────────────────────────────────────────

    def patch(self, keys: Iterable[str], recipe: Recipe[Any]) -> UndoToken:
        """
        Apply recipe to the current value of each key that has one.

        Keys without a value are skipped. The recipe must return a new
        value; a recipe that raises leaves the store untouched.
        """
        planned: list[PatchedValue] = []
        for key in sorted(set(keys)):
            stored = self._entries.get(key)
            if stored is None or stored.fetched_at is None:
                continue
            planned.append(PatchedValue(key, stored.value, recipe(stored.value)))

        for p in planned:
            self._entries[p.key].value = p.after
        return UndoToken(tuple(planned))

    def undo(self, token: UndoToken) -> frozenset[str]:
        """
        Restore values recorded in token.

        Skips keys whose value changed since the patch (newer data wins).
        Returns the keys actually restored.
        """
        restored: set[str] = set()
        for p in reversed(token.patches):
            stored = self._entries.get(p.key)
            if stored is None or stored.value is not p.after:
                continue
            stored.value = p.before
            restored.add(p.key)
        return frozenset(restored)

    # ── garbage collection ───────────────────────────────────────────────────

    def gc(self, now: float | None = None) -> list[str]:
        """
        Remove entries nobody watches and nobody has touched for a while.

        Keeps entries with subscribers or a fetch in flight.
        """
        now = self._clock() if now is None else now
        retention = self._policy.retention.total_seconds()
        removed: list[str] = []

        for key, stored in list(self._entries.items()):
            if stored.listeners or key in self._inflight:
                continue
            if now - stored.last_activity() < retention:
                continue
            self._index.detach(key)
            del self._entries[key]
            removed.append(key)

        if removed:
            logger.debug("GC removed %d entries: %s", len(removed), removed)
        return removed

    def _ensure(self, key: str) -> _StoredEntry:
        stored = self._entries.get(key)
        if stored is None:
            stored = _StoredEntry(key=key, created_at=self._clock())
            self._entries[key] = stored
        return stored


__all__ = ("EntryStore", "Subscription", "Listener")
