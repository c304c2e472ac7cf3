"""
Mirror caches.

A mirror remembers values already resolved by a memoizer so repeated calls
skip the backend entirely. Instance mirrors belong to one memoizer; static
mirrors are shared by every memoizer of the same owner type and live as
long as the process (or until the context is reset).

Mirrors also remember the tags of entries resolved through the shared
cache, so tag invalidation can evict them.
"""

import threading
from typing import Any, Dict, FrozenSet, Iterable, Optional, Set, Tuple

from ...domain.memo.value_objects import MISS


class Mirror:
    """CacheKey string → value map guarded by a re-entrant lock."""

    def __init__(self):
        self._entries: Dict[str, Any] = {}
        self._tags: Dict[str, FrozenSet[str]] = {}
        self._in_flight: Set[Tuple[int, str]] = set()
        self._lock = threading.RLock()

    def begin(self, key: str) -> bool:
        """Mark ``key`` as being computed by the current thread.

        Returns False when the current thread is already computing it.
        """
        marker = (threading.get_ident(), key)
        with self._lock:
            if marker in self._in_flight:
                return False
            self._in_flight.add(marker)
            return True

    def end(self, key: str) -> None:
        with self._lock:
            self._in_flight.discard((threading.get_ident(), key))

    def lookup(self, key: str) -> Any:
        """Return the mirrored value or MISS."""
        with self._lock:
            return self._entries.get(key, MISS)

    def store(self, key: str, value: Any, tags: Optional[Iterable[str]] = None) -> None:
        with self._lock:
            self._entries[key] = value
            if tags:
                self._tags[key] = frozenset(tags)
            else:
                self._tags.pop(key, None)

    def discard(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._tags.pop(key, None)

    def discard_tagged(self, tags: Iterable[str]) -> int:
        """Drop every entry carrying any of ``tags``; returns how many."""
        wanted = frozenset(tags)
        with self._lock:
            stale = [key for key, entry_tags in self._tags.items() if entry_tags & wanted]
            for key in stale:
                self.discard(key)
            return len(stale)

    def entries(self) -> Dict[str, Any]:
        """Shallow copy of all mirrored entries."""
        with self._lock:
            return dict(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._tags.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class StaticMirrorRegistry:
    """Process-wide owner type → shared Mirror mapping."""

    def __init__(self):
        self._mirrors: Dict[type, Mirror] = {}
        self._lock = threading.Lock()

    def mirror_for(self, owner: type) -> Mirror:
        """Return the static mirror of ``owner``, creating it on first use."""
        with self._lock:
            mirror = self._mirrors.get(owner)
            if mirror is None:
                mirror = Mirror()
                self._mirrors[owner] = mirror
            return mirror

    def clear(self, owner: Optional[type] = None) -> None:
        """Clear one owner's static mirror, or all of them."""
        with self._lock:
            if owner is None:
                self._mirrors.clear()
            else:
                self._mirrors.pop(owner, None)
