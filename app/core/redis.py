from __future__ import annotations

import logging
from typing import Optional

import redis
from redis import Redis

from app.core.config import settings

logger = logging.getLogger("fault_routing.redis")

_client: Optional[Redis] = None


def get_redis() -> Optional[Redis]:
    """Return a singleton Redis client (or None if disabled or not reachable)."""
    global _client
    if _client is not None:
        return _client
    if not settings.REDIS_URL:
        return None
    try:
        _client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
        _client.ping()
        return _client
    except (redis.RedisError, ValueError) as exc:
        logger.warning("Redis unavailable: %s", exc)
        _client = None
        return None


def set_redis(client: Optional[Redis]) -> None:
    """Swap the shared client (used by the test suite and by scripts)."""
    global _client
    _client = client
