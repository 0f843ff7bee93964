"""
Cache types.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from basket.cache._tags import Tag

# ═══════════════════════════════════════════════════════════════════════════════
# Entry Status — Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class EntryStatus(Enum):
    """
    State of a cache entry.

    Lifecycle:
        UNINITIALIZED → PENDING → FULFILLED
                                → REJECTED
        FULFILLED / REJECTED → PENDING (invalidate, refetch)
    """

    UNINITIALIZED = auto()
    PENDING = auto()
    FULFILLED = auto()
    REJECTED = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Entry — Snapshot Handed to Collaborators
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheEntry[T]:
    """
    Immutable view of a cache entry.

    Note: value survives PENDING after an invalidation so the UI can keep
    showing stale data while the refetch runs. Same for error.
    """

    key: str
    status: EntryStatus
    value: T | None
    error: FetchError | None
    tags: frozenset[Tag]
    fetched_at: float | None
    subscriber_count: int
    created_at: float
    released_at: float | None = None

    @property
    def has_value(self) -> bool:
        return self.fetched_at is not None

    @property
    def is_pending(self) -> bool:
        return self.status == EntryStatus.PENDING

    @property
    def is_fulfilled(self) -> bool:
        return self.status == EntryStatus.FULFILLED

    @property
    def is_rejected(self) -> bool:
        return self.status == EntryStatus.REJECTED

    def age(self, now: float) -> float | None:
        """Seconds since the last successful fetch."""
        if self.fetched_at is None:
            return None
        return now - self.fetched_at


# ═══════════════════════════════════════════════════════════════════════════════
# Result Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class QueryResult[T]:
    """Query outcome with metadata."""

    value: T
    key: str
    from_cache: bool
    fetched_at: float


@dataclass(frozen=True, slots=True)
class MutationResult[T]:
    """Mutation outcome with the cache keys it invalidated."""

    value: T
    invalidated: frozenset[str]


# ═══════════════════════════════════════════════════════════════════════════════
# Optimistic Updates
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OptimisticPatch:
    """
    Patch applied to cached values before a mutation's write resolves.

    recipe: pure function old value → new value.
    keys: explicit targets. None means every key resolved from the
    mutation's invalidated tags.
    """

    recipe: Callable[[Any], Any]
    keys: frozenset[str] | None = None


@dataclass(frozen=True, slots=True)
class PatchedValue:
    """One recorded patch: what was there, what we put there."""

    key: str
    before: Any
    after: Any


@dataclass(frozen=True, slots=True)
class UndoToken:
    """
    Immutable record of an optimistic patch.

    Returned by EntryStore.patch(), consumed by EntryStore.undo().
    """

    patches: tuple[PatchedValue, ...] = ()

    @property
    def keys(self) -> frozenset[str]:
        return frozenset(p.key for p in self.patches)

    def __bool__(self) -> bool:
        return bool(self.patches)


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True, eq=False)
class FetchError(Exception):
    """
    Fetch rejected.

    The same instance is stored on the entry and delivered to every
    deduplicated caller.
    """

    key: str
    cause: BaseException

    def __str__(self) -> str:
        return f"fetch for {self.key!r} failed: {self.cause}"


@dataclass(frozen=True, slots=True, eq=False)
class MutationError(Exception):
    """
    Mutation write rejected. Nothing was invalidated.

    keys: cache keys the mutation would have touched.
    rolled_back: keys whose optimistic patch was undone.
    """

    cause: BaseException
    tags: frozenset[Tag] = field(default_factory=frozenset)
    keys: frozenset[str] = field(default_factory=frozenset)
    rolled_back: frozenset[str] = field(default_factory=frozenset)

    def __str__(self) -> str:
        tags = ", ".join(sorted(str(t) for t in self.tags)) or "-"
        return f"mutation failed (tags: {tags}): {self.cause}"


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "EntryStatus",
    "CacheEntry",
    "QueryResult",
    "MutationResult",
    "OptimisticPatch",
    "PatchedValue",
    "UndoToken",
    "FetchError",
    "MutationError",
)
