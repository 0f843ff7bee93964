"""
Consumption ledger — which guest tokens have been merged.

Same shape as an idempotency store: claim (compare-and-set) before doing
the work, complete or release afterwards.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Protocol

from kungfu import Error, Ok, Result

from basket._types import Clock
from basket.cart._codec import line_from_dict, line_to_dict
from basket.cart._types import CartLine, MergeState
from basket.storage._kv import KeyValueStorage, StorageError

# ═══════════════════════════════════════════════════════════════════════════════
# Ledger Record
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class LedgerRecord:
    """State of one guest token. lines is set once MERGED."""

    token: str
    state: MergeState
    updated_at: float
    lines: tuple[CartLine, ...] | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class ConsumptionLedger(Protocol):
    """
    Records guest-token consumption.

    claim() must be atomic: of two concurrent claims for one token exactly
    one gets Ok(True).
    """

    async def get(self, token: str) -> Result[LedgerRecord | None, StorageError]:
        """Record for token, Ok(None) if never claimed."""
        ...

    async def claim(self, token: str) -> Result[bool, StorageError]:
        """UNMERGED → MERGING. Ok(False) if already claimed or merged."""
        ...

    async def complete(
        self, token: str, lines: tuple[CartLine, ...]
    ) -> Result[None, StorageError]:
        """MERGING → MERGED, remembering the merged lines."""
        ...

    async def release(self, token: str) -> Result[None, StorageError]:
        """MERGING → UNMERGED after a failed commit."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Ledger
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryLedger:
    """
    In-memory ledger.

    Note: Per process. Use StorageLedger to survive reloads.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._records: dict[str, LedgerRecord] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def get(self, token: str) -> Result[LedgerRecord | None, StorageError]:
        async with self._lock:
            return Ok(self._records.get(token))

    async def claim(self, token: str) -> Result[bool, StorageError]:
        async with self._lock:
            if token in self._records:
                return Ok(False)
            self._records[token] = LedgerRecord(token, MergeState.MERGING, self._clock())
            return Ok(True)

    async def complete(
        self, token: str, lines: tuple[CartLine, ...]
    ) -> Result[None, StorageError]:
        async with self._lock:
            record = self._records.get(token)
            if record is None or record.state != MergeState.MERGING:
                return Error(StorageError(f"No claim for token: {token}"))
            self._records[token] = LedgerRecord(
                token, MergeState.MERGED, self._clock(), tuple(lines)
            )
            return Ok(None)

    async def release(self, token: str) -> Result[None, StorageError]:
        async with self._lock:
            record = self._records.get(token)
            if record is not None and record.state == MergeState.MERGING:
                del self._records[token]
            return Ok(None)


# ═══════════════════════════════════════════════════════════════════════════════
# Storage Ledger
# ═══════════════════════════════════════════════════════════════════════════════


class StorageLedger:
    """
    Ledger persisted through a KeyValueStorage, one key per token.

    Note: claim() is atomic within this process only; the storage has no
    compare-and-set.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        prefix: str = "basket:merged:",
        clock: Clock = time.time,
    ) -> None:
        self._storage = storage
        self._prefix = prefix
        self._clock = clock
        self._lock = asyncio.Lock()

    async def get(self, token: str) -> Result[LedgerRecord | None, StorageError]:
        async with self._lock:
            return await self._read(token)

    async def claim(self, token: str) -> Result[bool, StorageError]:
        async with self._lock:
            match await self._read(token):
                case Ok(None):
                    pass
                case Ok(_):
                    return Ok(False)
                case Error(e):
                    return Error(e)
            record = LedgerRecord(token, MergeState.MERGING, self._clock())
            match await self._write(record):
                case Ok(_):
                    return Ok(True)
                case Error(e):
                    return Error(e)

    async def complete(
        self, token: str, lines: tuple[CartLine, ...]
    ) -> Result[None, StorageError]:
        async with self._lock:
            record = LedgerRecord(token, MergeState.MERGED, self._clock(), tuple(lines))
            return await self._write(record)

    async def release(self, token: str) -> Result[None, StorageError]:
        async with self._lock:
            match await self._read(token):
                case Ok(record) if record is not None and record.state == MergeState.MERGING:
                    match await self._storage.remove(self._prefix + token):
                        case Ok(_):
                            return Ok(None)
                        case Error(e):
                            return Error(e)
                case Ok(_):
                    return Ok(None)
                case Error(e):
                    return Error(e)

    async def _read(self, token: str) -> Result[LedgerRecord | None, StorageError]:
        match await self._storage.get(self._prefix + token):
            case Ok(None):
                return Ok(None)
            case Ok(text):
                try:
                    data = json.loads(text)
                    if not isinstance(data, dict):
                        raise TypeError(f"expected an object, got {type(data).__name__}")
                    lines = data.get("lines")
                    return Ok(
                        LedgerRecord(
                            token=token,
                            state=MergeState[data["state"]],
                            updated_at=float(data["updated_at"]),
                            lines=None
                            if lines is None
                            else tuple(line_from_dict(item) for item in lines),
                        )
                    )
                except (KeyError, TypeError, ValueError) as e:
                    return Error(StorageError(f"Corrupt ledger record for {token}", e))
            case Error(e):
                return Error(e)

    async def _write(self, record: LedgerRecord) -> Result[None, StorageError]:
        payload = {
            "state": record.state.name,
            "updated_at": record.updated_at,
            "lines": None
            if record.lines is None
            else [line_to_dict(line) for line in record.lines],
        }
        return await self._storage.set(self._prefix + record.token, json.dumps(payload))


__all__ = ("LedgerRecord", "ConsumptionLedger", "MemoryLedger", "StorageLedger")
