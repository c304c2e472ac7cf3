"""
Backend adapters and in-process capabilities.
"""

from .adapters import (
    BackendAdapter,
    LocalAdapter,
    RegistryAdapter,
    SessionAdapter,
    SharedCacheAdapter,
)
from .memory import InMemoryTagCache, MappingSession

__all__ = [
    "BackendAdapter",
    "InMemoryTagCache",
    "LocalAdapter",
    "MappingSession",
    "RegistryAdapter",
    "SessionAdapter",
    "SharedCacheAdapter",
]
