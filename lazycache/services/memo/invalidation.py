"""
Invalidation Controller

Tag-based bulk invalidation (shared cache only) and point invalidation of
a single key across mirrors and backends.
"""

from typing import Iterable, Union

import structlog
from opentelemetry import trace

from ...domain.memo.value_objects import Backend, CacheKey, CacheTag, normalize_tags
from ...infrastructure.backends.adapters import SharedCacheAdapter
from ...infrastructure.registry.mirrors import Mirror
from .context import MemoContext

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

TagsLike = Union[str, CacheTag, Iterable[Union[str, CacheTag]]]


class InvalidationController:
    """Removes memoized values from mirrors and backends."""

    def __init__(self, context: MemoContext):
        self.context = context

    def invalidate_by_tag(self, tags: TagsLike) -> None:
        """
        Invalidate every shared cache entry stored with any of ``tags``.

        Mirrored copies of those entries are evicted from every live
        mirror of the context. Local, registry and session entries are not
        affected.

        Raises:
            BackendUnavailableError: No shared cache is configured
            BackendError: The shared cache failed
        """
        normalized = normalize_tags(tags)
        if not normalized:
            return
        names = sorted(tag.value for tag in normalized)
        with tracer.start_as_current_span("lazycache.invalidate_by_tag") as span:
            span.set_attribute("lazycache.tags", names)
            SharedCacheAdapter(self.context.shared_cache).invalidate(normalized)

            evicted = sum(
                mirror.discard_tagged(names) for mirror in self.context.tagged_mirrors()
            )
            span.set_attribute("lazycache.evicted", evicted)
        logger.info("Invalidated memoized values by tag", tags=names, evicted=evicted)

    def clear(self, key: CacheKey, backend: Union[Backend, str], mirror: Mirror) -> None:
        """
        Remove ``key`` from ``mirror`` and from ``backend``.

        The mirror entry is always removed, even when the backend fails.
        """
        mirror.discard(key.value)
        backend = Backend.parse(backend)
        self.context.adapter(backend).remove(key)
        logger.debug("Cleared memoized value", key=key.value, backend=backend.value)
