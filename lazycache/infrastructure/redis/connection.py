"""
Redis Connection Factory

Builds synchronous Redis clients from settings for the shared cache.
"""

from typing import Optional

import redis
import structlog

from ...core.config import get_settings

logger = structlog.get_logger(__name__)


def create_redis_client(url: Optional[str] = None, **options) -> redis.Redis:
    """
    Create a Redis client.

    Args:
        url: Connection URL, defaults to ``REDIS_URL`` from settings
        **options: Extra keyword arguments for :meth:`redis.Redis.from_url`

    Returns:
        Client with ``decode_responses`` enabled
    """
    settings = get_settings()
    options.setdefault("socket_timeout", settings.REDIS_SOCKET_TIMEOUT)
    options.setdefault("socket_connect_timeout", settings.REDIS_SOCKET_TIMEOUT)
    options["decode_responses"] = True
    client = redis.Redis.from_url(url or settings.REDIS_URL, **options)
    logger.info("Redis client created", url=_redact(url or settings.REDIS_URL))
    return client


def _redact(url: str) -> str:
    """Hide the password part of a connection URL."""
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    credentials, _, host = rest.rpartition("@")
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"
