"""
Key-value storage — persistence collaborator protocol.

Strings in, strings out. Whatever sits behind it (browser storage bridge,
file, Redis) is the collaborator's business.
All methods return Result for explicit error handling.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from kungfu import Ok, Result

# ═══════════════════════════════════════════════════════════════════════════════
# Storage Error
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True, eq=False)
class StorageError(Exception):
    """Storage operation error."""

    message: str
    cause: BaseException | None = None

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"


# ═══════════════════════════════════════════════════════════════════════════════
# Storage Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class KeyValueStorage(Protocol):
    """
    Persistence with get / set / remove primitives.

    Example:
        class FileStorage:
            def __init__(self, root: Path) -> None:
                self.root = root

            async def get(self, key: str) -> Result[str | None, StorageError]:
                path = self.root / key
                try:
                    return Ok(path.read_text() if path.exists() else None)
                except OSError as e:
                    return Error(StorageError("read failed", e))

            # ... set, remove
    """

    async def get(self, key: str) -> Result[str | None, StorageError]:
        """Get value. Returns Ok(None) if missing."""
        ...

    async def set(self, key: str, value: str) -> Result[None, StorageError]:
        """Store value, replacing any previous one."""
        ...

    async def remove(self, key: str) -> Result[bool, StorageError]:
        """Remove key. Returns Ok(True) if it existed."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Function-based Storage Builder
# ═══════════════════════════════════════════════════════════════════════════════

type GetFn = Callable[[str], Awaitable[Result[str | None, StorageError]]]
type SetFn = Callable[[str, str], Awaitable[Result[None, StorageError]]]
type RemoveFn = Callable[[str], Awaitable[Result[bool, StorageError]]]


@dataclass(frozen=True, slots=True)
class FunctionalStorage:
    """
    Storage built from functions.

    Example:
        storage = storage_from(
            get=bridge.get_item,
            set=bridge.set_item,
            remove=bridge.remove_item,
        )
    """

    _get: GetFn
    _set: SetFn
    _remove: RemoveFn

    async def get(self, key: str) -> Result[str | None, StorageError]:
        return await self._get(key)

    async def set(self, key: str, value: str) -> Result[None, StorageError]:
        return await self._set(key, value)

    async def remove(self, key: str) -> Result[bool, StorageError]:
        return await self._remove(key)


def storage_from(get: GetFn, set: SetFn, remove: RemoveFn) -> FunctionalStorage:
    """Create KeyValueStorage from functions."""
    return FunctionalStorage(_get=get, _set=set, _remove=remove)


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Storage — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryStorage:
    """
    In-memory key-value storage.

    Note: Single process only, data does not survive a restart.
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Result[str | None, StorageError]:
        async with self._lock:
            return Ok(self._data.get(key))

    async def set(self, key: str, value: str) -> Result[None, StorageError]:
        async with self._lock:
            self._data[key] = value
            return Ok(None)

    async def remove(self, key: str) -> Result[bool, StorageError]:
        async with self._lock:
            return Ok(self._data.pop(key, None) is not None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the current contents."""
        return dict(self._data)


__all__ = (
    "StorageError",
    "KeyValueStorage",
    "FunctionalStorage",
    "storage_from",
    "MemoryStorage",
)
