"""
Memoization Context

Bundles the process-wide state every memoizer shares: the nested registry,
the static mirrors, and the configured shared cache and session
capabilities. Memoizers take a context explicitly or fall back to the
process default, which can be configured, replaced and torn down.
"""

import threading
import weakref
from dataclasses import dataclass, field
from typing import List, Optional, Union

import structlog

from ...domain.memo.interfaces import SessionSource, SharedCacheBackend
from ...domain.memo.keys import KeyCanonicalizer
from ...domain.memo.value_objects import Backend
from ...infrastructure.backends.adapters import (
    BackendAdapter,
    LocalAdapter,
    RegistryAdapter,
    SessionAdapter,
    SharedCacheAdapter,
)
from ...infrastructure.registry import Mirror, NestedRegistry, StaticMirrorRegistry

logger = structlog.get_logger(__name__)

_UNSET = object()


@dataclass
class MemoContext:
    """Shared state and capabilities used by memoizers."""

    registry: NestedRegistry = field(default_factory=NestedRegistry)
    static_mirrors: StaticMirrorRegistry = field(default_factory=StaticMirrorRegistry)
    shared_cache: Optional[SharedCacheBackend] = None
    session: SessionSource = None
    canonicalizer: KeyCanonicalizer = field(default_factory=KeyCanonicalizer)
    _tagged_mirrors: weakref.WeakSet = field(default_factory=weakref.WeakSet, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def adapter(self, backend: Union[Backend, str]) -> BackendAdapter:
        """Build the adapter for ``backend`` over this context's stores."""
        backend = Backend.parse(backend)
        if backend is Backend.LOCAL:
            return LocalAdapter()
        if backend is Backend.REGISTRY:
            return RegistryAdapter(self.registry)
        if backend is Backend.CACHE:
            return SharedCacheAdapter(self.shared_cache)
        return SessionAdapter(self.session)

    def track_tagged(self, mirror: Mirror) -> None:
        """Remember a mirror holding tagged entries, without keeping it alive."""
        with self._lock:
            self._tagged_mirrors.add(mirror)

    def tagged_mirrors(self) -> List[Mirror]:
        with self._lock:
            return list(self._tagged_mirrors)

    def reset(self) -> None:
        """Drop registry contents and static mirrors."""
        self.registry.clear()
        self.static_mirrors.clear()


_default_context: Optional[MemoContext] = None
_context_lock = threading.Lock()


def get_default_context() -> MemoContext:
    """Return the process default context, creating it on first use."""
    global _default_context
    with _context_lock:
        if _default_context is None:
            _default_context = MemoContext()
        return _default_context


def set_default_context(context: MemoContext) -> MemoContext:
    """Replace the process default context."""
    global _default_context
    with _context_lock:
        _default_context = context
    return context


def reset_default_context() -> None:
    """Tear down the process default context; the next use builds a fresh one."""
    global _default_context
    with _context_lock:
        if _default_context is not None:
            _default_context.reset()
        _default_context = None


def configure(
    shared_cache: Optional[SharedCacheBackend] = _UNSET,
    session: SessionSource = _UNSET,
) -> MemoContext:
    """
    Attach capabilities to the process default context.

    Args:
        shared_cache: Shared cache used by the ``cache`` backend
        session: Session object, or a provider returning the current
            session (or None when there is none)

    Returns:
        The configured default context
    """
    context = get_default_context()
    if shared_cache is not _UNSET:
        context.shared_cache = shared_cache
    if session is not _UNSET:
        context.session = session
    logger.info(
        "Memoization context configured",
        shared_cache=type(context.shared_cache).__name__ if context.shared_cache else None,
        session=context.session is not None,
    )
    return context
