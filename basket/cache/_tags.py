"""
Tags — namespaced invalidation labels and the tag → keys index.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

# ═══════════════════════════════════════════════════════════════════════════════
# Tag — Namespaced Identifier
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Tag:
    """
    Invalidation label.

    A tag is a kind plus an optional id: ``Tag("Cart")`` or ``Tag("User", 42)``.
    The id is normalized to ``str`` so ``Tag("User", 42) == Tag("User", "42")``.

    A kind-only tag is the wildcard for its kind when invalidating:
    resolving ``Tag("User")`` also returns keys tagged ``Tag("User", 42)``.

    Example:
        CART = Tag("Cart")
        user_tag = USER.with_id(user.id)
    """

    kind: str
    id: str | None = None

    def __post_init__(self) -> None:
        if not self.kind or ":" in self.kind:
            raise ValueError(f"Invalid tag kind: {self.kind!r}")
        if self.id is not None and not isinstance(self.id, str):
            object.__setattr__(self, "id", str(self.id))

    @classmethod
    def parse(cls, text: str) -> Tag:
        """Parse the string form ``"Kind"`` or ``"Kind:id"``."""
        kind, sep, ident = text.partition(":")
        return cls(kind, ident if sep else None)

    def with_id(self, ident: object) -> Tag:
        """Same kind, specific id."""
        return Tag(self.kind, str(ident))

    @property
    def is_kind(self) -> bool:
        """True for kind-only (wildcard) tags."""
        return self.id is None

    def __str__(self) -> str:
        if self.id is None:
            return self.kind
        return f"{self.kind}:{self.id}"


# Storefront tags
CART = Tag("Cart")
CART_ITEM = Tag("CartItem")
PRODUCT = Tag("Product")
ORDER = Tag("Order")
USER = Tag("User")


# ═══════════════════════════════════════════════════════════════════════════════
# TagIndex — tag → keys
# ═══════════════════════════════════════════════════════════════════════════════


class TagIndex:
    """
    Maps tags to the cache keys that depend on them.

    Keeps the reverse mapping (key → tags) so ``attach`` can replace a key's
    tag set and ``detach`` can remove it everywhere in one pass.
    """

    def __init__(self) -> None:
        self._keys: dict[Tag, set[str]] = {}
        self._tags: dict[str, frozenset[Tag]] = {}
        # kind → tags of that kind currently indexed
        self._kinds: dict[str, set[Tag]] = {}

    def attach(self, key: str, tags: Iterable[Tag]) -> None:
        """Register key under tags, replacing its previous tag set."""
        new = frozenset(tags)
        old = self._tags.get(key, frozenset())

        for tag in old - new:
            self._unlink(tag, key)
        for tag in new - old:
            self._keys.setdefault(tag, set()).add(key)
            self._kinds.setdefault(tag.kind, set()).add(tag)

        if new:
            self._tags[key] = new
        else:
            self._tags.pop(key, None)

    def detach(self, key: str) -> None:
        """Remove key from every tag."""
        for tag in self._tags.pop(key, frozenset()):
            self._unlink(tag, key)

    def resolve(self, tags: Iterable[Tag]) -> set[str]:
        """Union of keys registered under any of the tags."""
        keys: set[str] = set()
        for tag in tags:
            if tag.is_kind:
                for indexed in self._kinds.get(tag.kind, ()):
                    keys |= self._keys[indexed]
            else:
                keys |= self._keys.get(tag, set())
        return keys

    def tags_of(self, key: str) -> frozenset[Tag]:
        return self._tags.get(key, frozenset())

    def clear(self) -> None:
        self._keys.clear()
        self._tags.clear()
        self._kinds.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._tags

    def __len__(self) -> int:
        return len(self._tags)

    def _unlink(self, tag: Tag, key: str) -> None:
        keys = self._keys.get(tag)
        if keys is None:
            return
        keys.discard(key)
        if not keys:
            del self._keys[tag]
            kind_tags = self._kinds.get(tag.kind)
            if kind_tags is not None:
                kind_tags.discard(tag)
                if not kind_tags:
                    del self._kinds[tag.kind]


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Tag",
    "TagIndex",
    "CART",
    "CART_ITEM",
    "PRODUCT",
    "ORDER",
    "USER",
)
