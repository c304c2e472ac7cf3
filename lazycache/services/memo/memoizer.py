"""
Memoizer Service

High-level memoization facade. Computes a value once and reuses it for the
lifetime selected per call:

- ``local``    – this memoizer only (usually one object instance)
- ``registry`` – the whole process, through the nested registry
- ``cache``    – an external shared cache with TTL hints and tags
- ``session``  – the current user session, if there is one

Every resolved value is also kept in the memoizer's mirror, so a key costs
at most one backend round trip per mirror lifetime.

Usage::

    class ProfileService:
        lazy = memoizer()

        def profile(self, user_id):
            return self.lazy.memoize(
                ["user", user_id],
                lambda: fetch_profile(user_id),
                Backend.CACHE,
                ttl=3600,
                tags=[f"user:{user_id}"],
            )

The ``registry`` backend addresses values by the dotted key path, so a key
that is a prefix of another reads the subtree stored under it: after
``memoize(["user", 42], ...)``, ``memoize("user", producer, "registry")``
returns ``{"42": ...}`` without calling ``producer``. Use distinct leading
parts for keys that must not nest.

A producer must not request its own key from the same memoizer while it is
computing it. With the reentrancy guard enabled (the default) such a call
raises :class:`ReentrantMemoizationError`; with it disabled the producer
runs again, or recurses forever if the nested call is unconditional.
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar, Union

import structlog
from opentelemetry import trace

from ...core.config import Settings, get_settings
from ...domain.memo.exceptions import BackendError, ReentrantMemoizationError
from ...domain.memo.keys import KeyCanonicalizer, KeyLike, KeySerializer
from ...domain.memo.value_objects import (
    MISS,
    TTL,
    Backend,
    CacheKey,
    ErrorPolicy,
    MemoEntry,
    TagDependency,
)
from ...infrastructure.backends.adapters import BackendAdapter
from ...infrastructure.registry.mirrors import Mirror
from .context import MemoContext, get_default_context
from .invalidation import InvalidationController, TagsLike

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

BackendLike = Union[Backend, str]
PolicyLike = Union[ErrorPolicy, str, bool]


class Memoizer:
    """
    Memoization facade bound to one owner.

    Args:
        owner: The object (or class) the memoizer serves; its type scopes
            the static mirror used by ``memoize_static``
        context: Shared state and capabilities, defaults to the process
            default context (resolved on every call)
        error_policy: Default reaction to backend failures
        serializer: Serializer for compound key parts
        settings: Settings override, mainly for tests
    """

    def __init__(
        self,
        owner: Any = None,
        context: Optional[MemoContext] = None,
        *,
        error_policy: Optional[PolicyLike] = None,
        serializer: Optional[KeySerializer] = None,
        settings: Optional[Settings] = None,
    ):
        if owner is None:
            self.owner_type = Memoizer
        elif isinstance(owner, type):
            self.owner_type = owner
        else:
            self.owner_type = type(owner)
        self.settings = settings or get_settings()
        self.error_policy = ErrorPolicy.parse(
            error_policy if error_policy is not None else self.settings.LAZYCACHE_ERROR_POLICY
        )
        self._context = context
        self._canonicalizer = KeyCanonicalizer(serializer) if serializer else None
        self._mirror = Mirror()

    @property
    def context(self) -> MemoContext:
        return self._context if self._context is not None else get_default_context()

    @property
    def static_mirror(self) -> Mirror:
        return self.context.static_mirrors.mirror_for(self.owner_type)

    def key(self, key: KeyLike) -> CacheKey:
        """Canonical cache key for ``key``."""
        canonicalizer = self._canonicalizer or self.context.canonicalizer
        return canonicalizer(key)

    # Memoization

    def memoize(
        self,
        key: KeyLike,
        producer: Callable[[], T],
        backend: Optional[BackendLike] = None,
        ttl: Optional[int] = None,
        tags: Optional[TagsLike] = None,
        on_error: Optional[PolicyLike] = None,
    ) -> T:
        """
        Return the memoized value for ``key``, calling ``producer`` on a miss.

        Args:
            key: One token or an ordered list of tokens
            producer: Zero-argument callable computing the value; its
                exceptions always propagate unchanged
            backend: Storage lifetime, defaults to ``LAZYCACHE_DEFAULT_BACKEND``
            ttl: TTL hint in seconds for the ``cache`` backend
            tags: Invalidation tags for the ``cache`` backend
            on_error: ``log`` to fall back to an uncached producer call when
                the cache or session fails, ``raise`` to propagate BackendError

        Returns:
            The cached or freshly produced value
        """
        return self._resolve(self._mirror, key, producer, backend, ttl, tags, on_error)

    def memoize_static(
        self,
        key: KeyLike,
        producer: Callable[[], T],
        backend: Optional[BackendLike] = None,
        ttl: Optional[int] = None,
        tags: Optional[TagsLike] = None,
        on_error: Optional[PolicyLike] = None,
    ) -> T:
        """Same as :meth:`memoize`, mirrored per owner type instead of per instance."""
        return self._resolve(self.static_mirror, key, producer, backend, ttl, tags, on_error)

    def memoize_local(self, key: KeyLike, producer: Callable[[], T]) -> T:
        """Memoize for the lifetime of this memoizer only."""
        return self.memoize(key, producer, Backend.LOCAL)

    def memoize_in_cache(
        self,
        key: KeyLike,
        producer: Callable[[], T],
        ttl: Optional[int] = None,
        tags: Optional[TagsLike] = None,
        on_error: Optional[PolicyLike] = None,
    ) -> T:
        """Memoize in the shared cache."""
        return self.memoize(key, producer, Backend.CACHE, ttl, tags, on_error)

    def memoize_in_session(self, key: KeyLike, producer: Callable[[], T]) -> T:
        """Memoize in the current session, or not at all without one."""
        return self.memoize(key, producer, Backend.SESSION)

    # Invalidation

    def clear(self, key: KeyLike, backend: Optional[BackendLike] = None) -> "Memoizer":
        """
        Forget ``key`` in this memoizer and in ``backend``.

        ``backend`` defaults to ``LAZYCACHE_CLEAR_DEFAULT_BACKEND`` (``local``:
        only the mirror is cleared).
        """
        InvalidationController(self.context).clear(
            self.key(key), backend or self.settings.LAZYCACHE_CLEAR_DEFAULT_BACKEND, self._mirror
        )
        return self

    def clear_static(self, key: KeyLike, backend: Optional[BackendLike] = None) -> "Memoizer":
        """Forget ``key`` in the owner type's static mirror and in ``backend``."""
        InvalidationController(self.context).clear(
            self.key(key),
            backend or self.settings.LAZYCACHE_CLEAR_DEFAULT_BACKEND,
            self.static_mirror,
        )
        return self

    def invalidate_by_tag(self, tags: TagsLike) -> None:
        """Invalidate shared cache entries stored with any of ``tags``.

        Mirrored copies are evicted too, in this and every other memoizer of
        the same context, so the next memoize call runs the producer again.
        """
        InvalidationController(self.context).invalidate_by_tag(tags)

    # Introspection

    def all_entries(self) -> Dict[str, Any]:
        """Copy of this memoizer's mirror."""
        return self._mirror.entries()

    def entry_count(self) -> int:
        return len(self._mirror)

    # Dispatch

    def _resolve(
        self,
        mirror: Mirror,
        key: KeyLike,
        producer: Callable[[], T],
        backend: Optional[BackendLike],
        ttl: Optional[int],
        tags: Optional[TagsLike],
        on_error: Optional[PolicyLike],
    ) -> T:
        cache_key = self.key(key)
        value = mirror.lookup(cache_key.value)
        if value is not MISS:
            return value

        backend = Backend.parse(backend or self.settings.LAZYCACHE_DEFAULT_BACKEND)
        policy = self.error_policy if on_error is None else ErrorPolicy.parse(on_error)
        # TTL and tags only reach the shared cache
        entry_ttl, dependency = TTL(0), None
        if backend is Backend.CACHE:
            entry_ttl = TTL(self.settings.LAZYCACHE_DEFAULT_TTL if ttl is None else ttl)
            dependency = TagDependency.of(tags)

        context = self.context
        with self._guard(mirror, cache_key, backend):
            value, persisted = self._dispatch(
                context.adapter(backend), cache_key, producer, entry_ttl, dependency, policy
            )
        if persisted:
            if dependency is not None:
                mirror.store(cache_key.value, value, dependency.names)
                context.track_tagged(mirror)
            else:
                mirror.store(cache_key.value, value)
        return value

    @contextmanager
    def _guard(self, mirror: Mirror, cache_key: CacheKey, backend: Backend):
        if not self.settings.LAZYCACHE_REENTRANCY_GUARD:
            yield
            return
        if not mirror.begin(cache_key.value):
            raise ReentrantMemoizationError(cache_key.value, backend.value)
        try:
            yield
        finally:
            mirror.end(cache_key.value)

    def _dispatch(
        self,
        adapter: BackendAdapter,
        cache_key: CacheKey,
        producer: Callable[[], T],
        ttl: TTL,
        dependency: Optional[TagDependency],
        policy: ErrorPolicy,
    ) -> Tuple[T, bool]:
        """Resolve through ``adapter``; returns the value and whether to mirror it."""
        with tracer.start_as_current_span("lazycache.memoize") as span:
            span.set_attribute("lazycache.key", cache_key.value)
            span.set_attribute("lazycache.backend", adapter.backend.value)

            try:
                available = adapter.available()
            except BackendError as e:
                return self._degrade(e, policy, producer, span), False

            if not available:
                logger.debug(
                    "Backend unavailable, calling producer uncached",
                    key=cache_key.value,
                    backend=adapter.backend.value,
                )
                span.set_attribute("lazycache.cached", False)
                return producer(), False

            found = adapter.lookup(cache_key)
            if found.is_failure:
                return self._degrade(found.error, policy, producer, span), False
            span.set_attribute("lazycache.hit", found.is_hit)
            if found.is_hit:
                return found.value, True

            value = producer()
            stored = adapter.store(MemoEntry(cache_key, value, ttl, dependency))
            if stored.is_failure:
                self._report(stored.error, policy, span)
                return value, False
            return value, True

    def _report(self, error: Exception, policy: ErrorPolicy, span) -> None:
        span.set_status(trace.Status(trace.StatusCode.ERROR, str(error)))
        if policy is ErrorPolicy.RAISE:
            raise error
        logger.error(
            "Error during memoization backend call",
            error=str(error),
            error_type=type(error).__name__,
            **getattr(error, "details", {}),
        )

    def _degrade(self, error: Exception, policy: ErrorPolicy, producer: Callable[[], T], span) -> T:
        self._report(error, policy, span)
        return producer()


class memoizer:
    """
    Descriptor giving every instance of a class its own :class:`Memoizer`.

    The memoizer is created on first access and stored on the instance, so
    its mirror lives exactly as long as the instance. Accessed on the class
    itself, the descriptor is returned.
    """

    def __init__(self, context: Optional[MemoContext] = None, **options: Any):
        self.context = context
        self.options = options
        self.name: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: Optional[type] = None):
        if instance is None:
            return self
        if self.name is None:
            raise TypeError("memoizer() must be assigned as a class attribute")
        bound = instance.__dict__.get(self.name)
        if bound is None:
            bound = Memoizer(instance, self.context, **self.options)
            instance.__dict__[self.name] = bound
        return bound
