"""
Guest cart storage — the anonymous session token and its cart snapshot.
"""

from __future__ import annotations

import secrets
import string
import time
from collections.abc import Callable, Iterable

from kungfu import Error, Ok, Result

from basket._types import Clock
from basket.cart._codec import dumps_lines, loads_lines
from basket.cart._types import CartLine, GuestCart
from basket.storage._kv import KeyValueStorage, StorageError

SESSION_KEY = "guest_session_id"
CART_KEY = "cart"

_ALPHABET = string.ascii_lowercase + string.digits


def new_session_token(clock: Clock = time.time) -> str:
    """``guest_<millis>_<9 random chars>``"""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"guest_{int(clock() * 1000)}_{suffix}"


class GuestCartStorage:
    """
    Guest cart persisted through a KeyValueStorage.

    Example:
        guests = GuestCartStorage(storage)
        match await guests.load():
            case Ok(guest) if guest is not None:
                await engine.reconcile(guest, user_lines, stock)
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        session_key: str = SESSION_KEY,
        cart_key: str = CART_KEY,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        self._storage = storage
        self._session_key = session_key
        self._cart_key = cart_key
        self._token_factory = token_factory if token_factory is not None else new_session_token

    async def current_token(self) -> Result[str | None, StorageError]:
        """Session token if one exists. Never creates one."""
        return await self._storage.get(self._session_key)

    async def session_token(self) -> Result[str, StorageError]:
        """Get or create the session token."""
        match await self._storage.get(self._session_key):
            case Ok(token) if token:
                return Ok(token)
            case Ok(_):
                token = self._token_factory()
                match await self._storage.set(self._session_key, token):
                    case Ok(_):
                        return Ok(token)
                    case Error(e):
                        return Error(e)
            case Error(e):
                return Error(e)

    async def load(self) -> Result[GuestCart | None, StorageError]:
        """Current guest cart, or None when there is no guest session."""
        match await self.current_token():
            case Ok(token) if token:
                pass
            case Ok(_):
                return Ok(None)
            case Error(e):
                return Error(e)

        match await self._storage.get(self._cart_key):
            case Ok(text):
                lines = loads_lines(text) if text else ()
                return Ok(GuestCart(token=token, lines=lines))
            case Error(e):
                return Error(e)

    async def save(self, lines: Iterable[CartLine]) -> Result[GuestCart, StorageError]:
        """Persist lines under the (possibly new) session token."""
        lines = tuple(lines)
        match await self.session_token():
            case Ok(token):
                pass
            case Error(e):
                return Error(e)

        match await self._storage.set(self._cart_key, dumps_lines(lines)):
            case Ok(_):
                return Ok(GuestCart(token=token, lines=lines))
            case Error(e):
                return Error(e)

    async def discard(self) -> Result[None, StorageError]:
        """Forget the guest cart and its session token."""
        for key in (self._cart_key, self._session_key):
            match await self._storage.remove(key):
                case Error(e):
                    return Error(e)
                case _:
                    pass
        return Ok(None)


__all__ = ("SESSION_KEY", "CART_KEY", "new_session_token", "GuestCartStorage")
