"""
Redis Tag Cache

Shared cache capability backed by Redis, with TTL hints and tag-based
invalidation.

Each tag owns a version key (``<tag prefix><tag>``). An entry records the
versions of its tags at write time; invalidating a tag rewrites its version,
so every entry written before no longer matches and reads as a miss. Stale
entries are left for Redis to expire through their TTL.

Entries are stored as JSON envelopes::

    {"value": <value>, "tags": {"user:42": "<version>"}}

so a cached ``null`` or ``false`` is still distinguishable from a missing key.
"""

import json
import uuid
from typing import Any, Dict, Iterable, Optional

import redis
import structlog
from opentelemetry import trace
from redis.exceptions import RedisError

from ...core.config import get_settings
from ...domain.memo.exceptions import BackendError
from ...domain.memo.interfaces import SharedCacheBackend
from ...domain.memo.value_objects import MISS, CacheTag, TagDependency
from .connection import create_redis_client

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

_FAILURES = (RedisError, TypeError, ValueError)


def _check_round_trip(value: Any) -> None:
    if json.loads(json.dumps(value)) != value:
        raise ValueError(
            f"Value of type {type(value).__name__} does not survive a JSON round trip"
        )


class RedisTagCache(SharedCacheBackend):
    """
    Redis implementation of the shared cache capability.

    Values must come back from JSON unchanged. Values that would not (tuples,
    sets, mappings with non-string keys, arbitrary objects) are refused with
    BackendError instead of being stored in a different shape.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        tag_prefix: Optional[str] = None,
    ):
        self.client = client if client is not None else create_redis_client()
        self.tag_prefix = tag_prefix or get_settings().REDIS_TAG_PREFIX

    def _tag_key(self, tag: str) -> str:
        return f"{self.tag_prefix}{tag}"

    def _fail(self, operation: str, key: Optional[str], error: Exception) -> BackendError:
        logger.error(
            "Redis tag cache operation failed",
            operation=operation,
            key=key,
            error=str(error),
        )
        return BackendError(
            message=f"Redis {operation} failed: {error}",
            backend="cache",
            operation=operation,
            key=key,
            original_error=error,
        )

    def _tag_versions(self, names: Iterable[str]) -> Dict[str, str]:
        """Current version of each tag, creating versions that do not exist yet."""
        versions: Dict[str, str] = {}
        for name in names:
            tag_key = self._tag_key(name)
            version = self.client.get(tag_key)
            if version is None:
                candidate = uuid.uuid4().hex
                # nx: a concurrent writer may have created it first
                if self.client.set(tag_key, candidate, nx=True):
                    version = candidate
                else:
                    version = self.client.get(tag_key)
            versions[name] = version
        return versions

    def get(self, key: str) -> Any:
        with tracer.start_as_current_span("lazycache.redis.get") as span:
            span.set_attribute("lazycache.key", key)
            try:
                raw = self.client.get(key)
                if raw is None:
                    span.set_attribute("lazycache.hit", False)
                    return MISS

                payload = json.loads(raw)
                tags: Dict[str, str] = payload.get("tags") or {}
                if tags:
                    names = list(tags)
                    current = self.client.mget([self._tag_key(name) for name in names])
                    if any(tags[name] != version for name, version in zip(names, current)):
                        span.set_attribute("lazycache.hit", False)
                        logger.debug("Entry outdated by tag invalidation", key=key)
                        return MISS

                span.set_attribute("lazycache.hit", True)
                return payload["value"]

            except (*_FAILURES, KeyError) as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise self._fail("get", key, e) from e

    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        dependency: Optional[TagDependency] = None,
    ) -> None:
        with tracer.start_as_current_span("lazycache.redis.set") as span:
            span.set_attribute("lazycache.key", key)
            span.set_attribute("lazycache.ttl", ttl_seconds)
            try:
                _check_round_trip(value)
                tags = self._tag_versions(dependency.names) if dependency else {}
                payload = json.dumps({"value": value, "tags": tags}, ensure_ascii=False)
                self.client.set(key, payload, ex=ttl_seconds if ttl_seconds > 0 else None)

                logger.debug(
                    "Stored shared cache entry",
                    key=key,
                    ttl_seconds=ttl_seconds,
                    tags=sorted(tags),
                )

            except _FAILURES as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise self._fail("set", key, e) from e

    def delete(self, key: str) -> bool:
        try:
            return self.client.delete(key) > 0
        except RedisError as e:
            raise self._fail("delete", key, e) from e

    def invalidate_by_tag(self, tags: Iterable[CacheTag]) -> None:
        names = [str(tag) for tag in tags]
        if not names:
            return
        with tracer.start_as_current_span("lazycache.redis.invalidate_by_tag") as span:
            span.set_attribute("lazycache.tags", names)
            try:
                self.client.mset({self._tag_key(name): uuid.uuid4().hex for name in names})
                logger.info("Invalidated cache tags", tags=names)

            except RedisError as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise self._fail("invalidate_by_tag", None, e) from e
