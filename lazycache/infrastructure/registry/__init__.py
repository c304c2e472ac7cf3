"""
Process-wide registries.

- NestedRegistry: dot-path addressable store behind the ``registry`` backend
- Mirror / StaticMirrorRegistry: per-memoizer and per-type mirror caches
"""

from .nested_registry import NestedRegistry
from .mirrors import Mirror, StaticMirrorRegistry

__all__ = ["Mirror", "NestedRegistry", "StaticMirrorRegistry"]
