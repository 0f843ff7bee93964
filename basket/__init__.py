"""
basket — storefront client state: tag-invalidated request cache and
guest → user cart reconciliation.

    from basket import cache as C    # Request cache
    from basket import cart as K     # Cart reducer and reconciliation
    from basket import storage as St # Key-value persistence
"""

from basket import cache
from basket import cart
from basket import storage
from basket.logging import logger
from basket._types import (
    Lazy,
    Fetch,
    Recipe,
    Clock,
)

__version__ = "0.1.0"

__all__ = (
    "cache",
    "cart",
    "storage",
    "logger",
    "Lazy",
    "Fetch",
    "Recipe",
    "Clock",
)
