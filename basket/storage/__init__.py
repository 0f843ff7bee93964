"""
Storage — key-value persistence collaborator.

    from basket import storage as St

    storage = St.MemoryStorage()
    await storage.set("guest_session_id", token)
"""

from basket.storage._kv import (
    StorageError,
    KeyValueStorage,
    FunctionalStorage,
    storage_from,
    MemoryStorage,
)

__all__ = (
    "StorageError",
    "KeyValueStorage",
    "FunctionalStorage",
    "storage_from",
    "MemoryStorage",
)
