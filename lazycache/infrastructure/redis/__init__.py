"""
Redis Infrastructure Module

Redis-backed shared cache with tag-based invalidation.

This module provides:
- RedisTagCache: SharedCacheBackend implementation over redis-py
- create_redis_client: client factory driven by settings
"""

from .connection import create_redis_client
from .tag_cache import RedisTagCache

__all__ = ["RedisTagCache", "create_redis_client"]
