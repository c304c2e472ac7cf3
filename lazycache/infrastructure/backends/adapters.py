"""
Backend Adapters

One adapter per :class:`~lazycache.domain.memo.value_objects.Backend`.
Adapters translate memoizer requests into calls on the underlying store and
report the outcome as a :class:`BackendResult` instead of raising, so the
memoizer can apply the caller's error policy. Removal and tag invalidation
raise :class:`BackendError` directly: they have no fallback.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

import structlog

from ...domain.memo.exceptions import BackendError, BackendUnavailableError
from ...domain.memo.interfaces import SessionBackend, SessionSource, SharedCacheBackend
from ...domain.memo.value_objects import (
    MISS,
    Backend,
    BackendResult,
    CacheKey,
    CacheTag,
    MemoEntry,
)
from ..registry.nested_registry import NestedRegistry

logger = structlog.get_logger(__name__)


def _wrap(error: Exception, backend: Backend, operation: str, key: Optional[str]) -> BackendError:
    if isinstance(error, BackendError):
        return error
    return BackendError(
        message=f"{backend.value} backend failed during {operation}: {error}",
        backend=backend.value,
        operation=operation,
        key=key,
        original_error=error,
    )


class BackendAdapter(ABC):
    """Uniform get/set/delete view over one storage strategy."""

    backend: Backend

    def available(self) -> bool:
        """Whether the underlying store exists for this call."""
        return True

    @abstractmethod
    def lookup(self, key: CacheKey) -> BackendResult:
        """Fetch ``key``; never raises for store failures."""
        pass

    @abstractmethod
    def store(self, entry: MemoEntry) -> BackendResult:
        """Persist ``entry``; never raises for store failures."""
        pass

    @abstractmethod
    def remove(self, key: CacheKey) -> None:
        """Remove ``key``; raises BackendError on store failures."""
        pass

    def _attempt(self, operation: str, key: CacheKey, call: Callable[[], Any]) -> BackendResult:
        try:
            return BackendResult.hit(call())
        except Exception as e:
            error = _wrap(e, self.backend, operation, key.value)
            logger.debug(
                "Backend operation failed",
                backend=self.backend.value,
                operation=operation,
                key=key.value,
                error=str(e),
            )
            return BackendResult.failure(error)


class LocalAdapter(BackendAdapter):
    """The memoizer's own mirror is the store; nothing else is involved."""

    backend = Backend.LOCAL

    def lookup(self, key: CacheKey) -> BackendResult:
        return BackendResult.miss()

    def store(self, entry: MemoEntry) -> BackendResult:
        return BackendResult.hit(entry.value)

    def remove(self, key: CacheKey) -> None:
        return None


class RegistryAdapter(BackendAdapter):
    """Process-wide nested registry. TTL and tags do not apply."""

    backend = Backend.REGISTRY

    def __init__(self, registry: NestedRegistry):
        self.registry = registry

    def lookup(self, key: CacheKey) -> BackendResult:
        value = self.registry.get(key.value, MISS)
        if value is MISS:
            return BackendResult.miss()
        return BackendResult.hit(value)

    def store(self, entry: MemoEntry) -> BackendResult:
        self.registry.set(entry.key.value, entry.value)
        return BackendResult.hit(entry.value)

    def remove(self, key: CacheKey) -> None:
        self.registry.unset(key.value)


class SharedCacheAdapter(BackendAdapter):
    """Delegates to an external shared cache with TTL hints and tags."""

    backend = Backend.CACHE

    def __init__(self, cache: Optional[SharedCacheBackend]):
        self.cache = cache

    def _require(self, operation: str) -> SharedCacheBackend:
        if self.cache is None:
            raise BackendUnavailableError(self.backend.value, operation)
        return self.cache

    def lookup(self, key: CacheKey) -> BackendResult:
        cache = self._require("get")
        result = self._attempt("get", key, lambda: cache.get(key.value))
        if result.is_failure:
            return result
        if result.value is MISS:
            return BackendResult.miss()
        return result

    def store(self, entry: MemoEntry) -> BackendResult:
        cache = self._require("set")
        result = self._attempt(
            "set",
            entry.key,
            lambda: cache.set(entry.key.value, entry.value, entry.ttl.seconds, entry.dependency),
        )
        if result.is_failure:
            return result
        return BackendResult.hit(entry.value)

    def remove(self, key: CacheKey) -> None:
        cache = self._require("delete")
        try:
            cache.delete(key.value)
        except BackendError:
            raise
        except Exception as e:
            raise _wrap(e, self.backend, "delete", key.value) from e

    def invalidate(self, tags: Iterable[CacheTag]) -> None:
        """Bulk-invalidate every entry depending on ``tags``."""
        cache = self._require("invalidate_by_tag")
        tags = list(tags)
        try:
            cache.invalidate_by_tag(tags)
        except BackendError:
            raise
        except Exception as e:
            raise _wrap(e, self.backend, "invalidate_by_tag", None) from e


class SessionAdapter(BackendAdapter):
    """
    Delegates to the current session, if there is one.

    ``source`` is either a session object or a provider returning the
    current session (or None). Without a session the adapter reports
    itself unavailable and the memoizer calls the producer uncached.

    The provider is called at most once per adapter; the memoizer builds a
    new adapter for every call, so one call sees one session throughout.
    """

    backend = Backend.SESSION

    def __init__(self, source: SessionSource = None):
        self.source = source
        self._resolved = False
        self._session: Optional[SessionBackend] = None

    def session(self) -> Optional[SessionBackend]:
        """Resolve the current session; provider failures raise BackendError."""
        if not self._resolved:
            self._session = self._resolve()
            self._resolved = True
        return self._session

    def _resolve(self) -> Optional[SessionBackend]:
        if self.source is None:
            return None
        if isinstance(self.source, SessionBackend):
            return self.source
        try:
            return self.source()
        except BackendError:
            raise
        except Exception as e:
            raise _wrap(e, self.backend, "resolve_session", None) from e

    def available(self) -> bool:
        return self.session() is not None

    def lookup(self, key: CacheKey) -> BackendResult:
        result = self._attempt("get", key, lambda: self.session().get(key.value))
        if result.is_failure:
            return result
        if result.value is None:
            return BackendResult.miss()
        return result

    def store(self, entry: MemoEntry) -> BackendResult:
        result = self._attempt(
            "set", entry.key, lambda: self.session().set(entry.key.value, entry.value)
        )
        if result.is_failure:
            return result
        return BackendResult.hit(entry.value)

    def remove(self, key: CacheKey) -> None:
        session = self.session()
        if session is None:
            return None
        try:
            session.remove(key.value)
        except BackendError:
            raise
        except Exception as e:
            raise _wrap(e, self.backend, "remove", key.value) from e
