"""
Memoization Domain

Value objects, key canonicalization, capability interfaces and exceptions
shared by the infrastructure and service layers.
"""

from .value_objects import (
    Backend,
    BackendResult,
    CacheKey,
    CacheTag,
    ErrorPolicy,
    MemoEntry,
    MISS,
    TagDependency,
    TTL,
    normalize_tags,
)
from .keys import KeyCanonicalizer, canonicalize, json_serializer
from .interfaces import SessionBackend, SessionProvider, SharedCacheBackend
from .exceptions import (
    BackendError,
    BackendUnavailableError,
    LazyCacheException,
    ReentrantMemoizationError,
    RegistryPathError,
)

__all__ = [
    "Backend",
    "BackendError",
    "BackendResult",
    "BackendUnavailableError",
    "CacheKey",
    "CacheTag",
    "ErrorPolicy",
    "KeyCanonicalizer",
    "LazyCacheException",
    "MemoEntry",
    "MISS",
    "ReentrantMemoizationError",
    "RegistryPathError",
    "SessionBackend",
    "SessionProvider",
    "SharedCacheBackend",
    "TagDependency",
    "TTL",
    "canonicalize",
    "json_serializer",
    "normalize_tags",
]
