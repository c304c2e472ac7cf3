"""
In-process capability implementations.

``InMemoryTagCache`` implements the shared cache contract with the same
tag-version scheme as the Redis implementation, for single-process
deployments and tests. ``MappingSession`` adapts any mutable mapping (a web
framework session, a plain dict) to the session contract.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, MutableMapping, Optional

import structlog

from ...domain.memo.interfaces import SessionBackend, SharedCacheBackend
from ...domain.memo.value_objects import MISS, CacheTag, TagDependency

logger = structlog.get_logger(__name__)


@dataclass
class _StoredEntry:
    value: Any
    expires_at: Optional[float] = None
    tag_versions: Dict[str, str] = field(default_factory=dict)


class InMemoryTagCache(SharedCacheBackend):
    """
    Dict-backed shared cache with TTL hints and tag invalidation.

    Expired entries are dropped lazily when read; nothing runs in the
    background.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, _StoredEntry] = {}
        self._tag_versions: Dict[str, str] = {}
        self._clock = clock
        self._lock = threading.RLock()

    def _tag_version(self, tag: str) -> str:
        version = self._tag_versions.get(tag)
        if version is None:
            version = uuid.uuid4().hex
            self._tag_versions[tag] = version
        return version

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return MISS
            if entry.expires_at is not None and self._clock() >= entry.expires_at:
                del self._entries[key]
                return MISS
            for tag, version in entry.tag_versions.items():
                if self._tag_versions.get(tag) != version:
                    return MISS
            return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        dependency: Optional[TagDependency] = None,
    ) -> None:
        with self._lock:
            tag_versions = {}
            if dependency is not None:
                tag_versions = {name: self._tag_version(name) for name in dependency.names}
            expires_at = self._clock() + ttl_seconds if ttl_seconds > 0 else None
            self._entries[key] = _StoredEntry(value, expires_at, tag_versions)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_by_tag(self, tags: Iterable[CacheTag]) -> None:
        with self._lock:
            names = [str(tag) for tag in tags]
            for name in names:
                self._tag_versions[name] = uuid.uuid4().hex
        logger.debug("Invalidated tags", tags=names)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class MappingSession(SessionBackend):
    """Session capability over any mutable mapping."""

    def __init__(self, data: Optional[MutableMapping[str, Any]] = None):
        self.data = data if data is not None else {}

    def get(self, key: str) -> Any:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)
