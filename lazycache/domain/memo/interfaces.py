"""
Memoization Capability Interfaces

Abstract contracts for the external stores the memoizer delegates to.
Concrete implementations live in the infrastructure layer; applications
may provide their own.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional, Union

from .value_objects import CacheTag, TagDependency


class SharedCacheBackend(ABC):
    """
    Shared cache capability with TTL hints and tag-based invalidation.

    ``get`` MUST return :data:`~lazycache.domain.memo.value_objects.MISS`
    for absent entries so that cached ``None``/``False`` values stay hits.
    """

    @abstractmethod
    def get(self, key: str) -> Any:
        """Return the stored value or MISS."""
        pass

    @abstractmethod
    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        dependency: Optional[TagDependency] = None,
    ) -> None:
        """Store ``value``; ``ttl_seconds`` of 0 means no expiry."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete one entry, returning whether it existed."""
        pass

    @abstractmethod
    def invalidate_by_tag(self, tags: Iterable[CacheTag]) -> None:
        """Invalidate every entry depending on any of ``tags``."""
        pass


class SessionBackend(ABC):
    """Per-user session store. ``get`` returns None for absent keys."""

    @abstractmethod
    def get(self, key: str) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


# Returns the current session, or None when no session exists (CLI, workers)
SessionProvider = Callable[[], Optional[SessionBackend]]

SessionSource = Union[SessionBackend, SessionProvider, None]
