"""
Cache policy — behavior configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta


def _delta(
    seconds: float | None,
    delta: timedelta | None,
    default: timedelta | None,
) -> timedelta | None:
    if delta is not None:
        return delta
    if seconds is not None:
        return timedelta(seconds=seconds)
    return default


# ═══════════════════════════════════════════════════════════════════════════════
# CachePolicy — Full Configuration
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """
    Cache policy configuration.

    Fluent builder pattern — chain methods to configure.

    Example:
        policy = (
            CachePolicy()
            .with_retention(seconds=120)
            .with_gc_interval(seconds=15)
            .with_freshness(seconds=30)
        )

    retention: how long an unobserved entry survives after its last activity.
    gc_interval: period of the client's background sweep.
    freshness: default window in which a fulfilled entry is served without
    refetching. None means fresh until invalidated.

    Note: Immutable — each method returns new CachePolicy.
    """

    retention: timedelta = timedelta(seconds=60)
    gc_interval: timedelta = timedelta(seconds=30)
    freshness: timedelta | None = None

    def __post_init__(self) -> None:
        if self.retention < timedelta(0):
            raise ValueError("retention must not be negative")
        if self.gc_interval <= timedelta(0):
            raise ValueError("gc_interval must be positive")
        if self.freshness is not None and self.freshness < timedelta(0):
            raise ValueError("freshness must not be negative")

    def with_retention(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> CachePolicy:
        """
        Set how long unused entries are kept.

        Example:
            .with_retention(seconds=60)
        """
        return replace(self, retention=_delta(seconds, delta, self.retention))

    def with_gc_interval(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> CachePolicy:
        """Set the background sweep period."""
        return replace(self, gc_interval=_delta(seconds, delta, self.gc_interval))

    def with_freshness(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> CachePolicy:
        """
        Set the default freshness window.

        Example:
            .with_freshness(seconds=30)   # refetch data older than 30s
            .with_freshness()             # fresh until invalidated
        """
        return replace(self, freshness=_delta(seconds, delta, None))


__all__ = ("CachePolicy",)
