"""
Memoization services.

- Memoizer / memoizer: the memoization facade and its per-instance descriptor
- InvalidationController: tag and point invalidation
- MemoContext: process-wide shared state and capabilities
"""

from .context import (
    MemoContext,
    configure,
    get_default_context,
    reset_default_context,
    set_default_context,
)
from .invalidation import InvalidationController
from .memoizer import Memoizer, memoizer

__all__ = [
    "InvalidationController",
    "MemoContext",
    "Memoizer",
    "configure",
    "get_default_context",
    "memoizer",
    "reset_default_context",
    "set_default_context",
]
