"""
Nested Registry

Process-wide, dot-path addressable store used as the ``registry`` backend.

Paths are split on ``.`` and every segment but the last addresses an
intermediate node (a plain ``dict``). Writes create missing nodes on the
way down; reads never do.

Reads check for an exact flat key before walking the path, writes and
removals always walk it. A key that literally contains dots can therefore
be read when it was stored flat but is never written flat::

    registry.set("a.b", 1)   # stores {"a": {"b": 1}}
    registry.get("a.b")      # 1, found by walking
"""

import copy
import threading
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

import structlog

from ...constants import KEY_SEPARATOR
from ...domain.memo.exceptions import RegistryPathError

logger = structlog.get_logger(__name__)


def _split(path: str) -> List[str]:
    if not isinstance(path, str) or path == "":
        raise RegistryPathError(path)
    return path.split(KEY_SEPARATOR)


def _merge_recursive(current: Mapping, update: Mapping) -> Dict[str, Any]:
    merged = dict(current)
    for key, value in update.items():
        existing = merged.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            merged[key] = _merge_recursive(existing, value)
        else:
            merged[key] = value
    return merged


class NestedRegistry:
    """
    Thread-safe tree of dicts addressed by dotted paths.

    All public methods hold a re-entrant lock for their whole duration.
    """

    def __init__(self, initial: Optional[Mapping] = None):
        self._root: Dict[str, Any] = dict(initial or {})
        self._lock = threading.RLock()

    def set(self, path: str, value: Any, merge: bool = False, recursive: bool = False) -> None:
        """
        Write ``value`` at ``path``.

        Args:
            path: Dotted path; intermediate nodes are created, and
                intermediate non-node values are replaced by empty nodes
            value: Value to store
            merge: Merge into an existing mapping when both the stored and
                the new value are mappings
            recursive: With ``merge``, merge nested mappings key by key
                instead of replacing top-level keys
        """
        segments = _split(path)
        with self._lock:
            node = self._root
            for segment in segments[:-1]:
                child = node.get(segment)
                if not isinstance(child, dict):
                    child = {}
                    node[segment] = child
                node = child

            leaf = segments[-1]
            current = node.get(leaf)
            if merge and isinstance(value, Mapping) and isinstance(current, Mapping):
                if recursive:
                    node[leaf] = _merge_recursive(current, value)
                else:
                    merged = dict(current)
                    merged.update(value)
                    node[leaf] = merged
            else:
                node[leaf] = value

    def get(self, path: str, default: Any = None) -> Any:
        """
        Read the value at ``path``, or ``default`` when any segment is missing.

        An exact flat key match wins over dotted traversal.
        """
        if not isinstance(path, str) or path == "":
            raise RegistryPathError(path)
        with self._lock:
            if path in self._root:
                return self._root[path]

            current: Any = self._root
            for segment in path.split(KEY_SEPARATOR):
                if isinstance(current, dict) and segment in current:
                    current = current[segment]
                else:
                    return default
            return current

    def has(self, path: str) -> bool:
        """Check whether ``path`` resolves to a stored value."""
        marker = object()
        return self.get(path, marker) is not marker

    def unset(self, path: str) -> None:
        """Remove the leaf at ``path``; missing intermediates make this a no-op."""
        segments = _split(path)
        with self._lock:
            node = self._root
            for segment in segments[:-1]:
                child = node.get(segment)
                if not isinstance(child, dict):
                    return
                node = child
            node.pop(segments[-1], None)

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the whole tree."""
        with self._lock:
            return copy.deepcopy(self._root)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._root.clear()
        logger.debug("Registry cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._root)
