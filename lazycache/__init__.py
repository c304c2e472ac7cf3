"""
lazycache

Compute an expensive value once and reuse it for the lifetime of an
object, of the process, of a shared cache entry, or of a user session.
"""

from .constants import APP_VERSION as __version__
from .core.logging import configure_logging
from .domain.memo import (
    MISS,
    Backend,
    BackendError,
    BackendUnavailableError,
    CacheKey,
    CacheTag,
    ErrorPolicy,
    LazyCacheException,
    ReentrantMemoizationError,
    RegistryPathError,
    SessionBackend,
    SharedCacheBackend,
    TTL,
    canonicalize,
)
from .infrastructure.backends import InMemoryTagCache, MappingSession
from .infrastructure.redis import RedisTagCache
from .infrastructure.registry import NestedRegistry
from .services.memo import (
    InvalidationController,
    MemoContext,
    Memoizer,
    configure,
    get_default_context,
    memoizer,
    reset_default_context,
    set_default_context,
)

__all__ = [
    "MISS",
    "Backend",
    "BackendError",
    "BackendUnavailableError",
    "CacheKey",
    "CacheTag",
    "ErrorPolicy",
    "InMemoryTagCache",
    "InvalidationController",
    "LazyCacheException",
    "MappingSession",
    "MemoContext",
    "Memoizer",
    "NestedRegistry",
    "ReentrantMemoizationError",
    "RedisTagCache",
    "RegistryPathError",
    "SessionBackend",
    "SharedCacheBackend",
    "TTL",
    "__version__",
    "canonicalize",
    "configure",
    "configure_logging",
    "get_default_context",
    "memoizer",
    "reset_default_context",
    "set_default_context",
]
