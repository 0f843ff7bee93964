"""
JSON codec for cart lines.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from basket.cart._types import CartLine

logger = logging.getLogger("basket.cart")


def line_to_dict(line: CartLine) -> dict[str, Any]:
    return {
        "product_id": line.product_id,
        "variant_id": line.variant_id,
        "quantity": line.quantity,
        "added_at": line.added_at,
    }


def line_from_dict(data: Mapping[str, Any]) -> CartLine:
    """Raises ValueError / KeyError / TypeError on malformed input."""
    if not isinstance(data, Mapping):
        raise TypeError(f"expected an object, got {type(data).__name__}")
    variant = data.get("variant_id")
    return CartLine(
        product_id=str(data["product_id"]),
        variant_id=None if variant is None else str(variant),
        quantity=data["quantity"],
        added_at=float(data.get("added_at", 0.0)),
    )


def dumps_lines(lines: Iterable[CartLine]) -> str:
    return json.dumps([line_to_dict(line) for line in lines], separators=(",", ":"))


def loads_lines(text: str) -> tuple[CartLine, ...]:
    """
    Decode lines, skipping malformed ones.

    A payload that is not a JSON list decodes to no lines.
    """
    try:
        raw = json.loads(text)
    except ValueError:
        logger.warning("Discarding undecodable cart payload")
        return ()
    if not isinstance(raw, list):
        logger.warning("Discarding cart payload of type %s", type(raw).__name__)
        return ()

    decoded: list[CartLine] = []
    for item in raw:
        try:
            decoded.append(line_from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed cart line %r: %s", item, e)
    return tuple(decoded)


__all__ = ("line_to_dict", "line_from_dict", "dumps_lines", "loads_lines")
