"""
Core types for basket.

Re-exports from kungfu + custom type aliases.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Lazy Computation Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Lazy[T, E] = LazyCoroResult[T, E]
"""Lazy async computation that may fail."""

type Fetch[T] = Callable[[], Awaitable[T]]
"""Collaborator-supplied fetch or write. Opaque to the core."""

type Recipe[T] = Callable[[T], T]
"""Pure update of a cached value. Must return a new value, never mutate."""

# ═══════════════════════════════════════════════════════════════════════════════
# Time
# ═══════════════════════════════════════════════════════════════════════════════

type Clock = Callable[[], float]
"""Seconds since an arbitrary epoch. Injected so tests can drive time."""

# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Type aliases
    "Lazy",
    "Fetch",
    "Recipe",
    "Clock",
)
