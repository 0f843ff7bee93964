"""
Pytest configuration and fixtures for basket tests.

This module provides:
- A manually driven clock
- Cache store, index and executor fixtures
- In-memory storage fixtures
"""

import pytest

from basket.cache import (
    CachePolicy,
    EntryStore,
    MutationExecutor,
    QueryExecutor,
    TagIndex,
)
from basket.cart import GuestCartStorage, MemoryLedger
from basket.storage import MemoryStorage


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# Cache
# ============================================================================


@pytest.fixture
def policy():
    return CachePolicy()


@pytest.fixture
def index():
    return TagIndex()


@pytest.fixture
def store(index, policy, clock):
    return EntryStore(index, policy, clock)


@pytest.fixture
def queries(store):
    return QueryExecutor(store)


@pytest.fixture
def mutations(store):
    return MutationExecutor(store)


# ============================================================================
# Storage
# ============================================================================


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def guest_storage(storage):
    return GuestCartStorage(storage, token_factory=lambda: "guest_1_abc")


@pytest.fixture
def ledger(clock):
    return MemoryLedger(clock)
