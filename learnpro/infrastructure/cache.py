"""Read-through Redis cache for the public catalogue.

Only anonymous, published data is cached: the course list per filter set
and the lesson list per course. Redis being unreachable is a cache miss,
never a request failure.
"""
import json
from typing import Any, Callable, Optional

import redis
import structlog

from ..config import settings

logger = structlog.get_logger(__name__)

CATALOGUE_PREFIX = "courses:list"

_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    global _client
    if _client is None:
        _client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
        )
    return _client


def catalogue_key(**filters) -> str:
    parts = [f"{name}={filters[name]}" for name in sorted(filters)]
    return ":".join([CATALOGUE_PREFIX, *parts])


def lessons_key(course_id: int) -> str:
    return f"course:{course_id}:lessons"


def get_cache(key: str) -> Optional[Any]:
    try:
        raw = get_redis().get(key)
    except redis.RedisError as exc:
        logger.warning("cache_read_failed", key=key, error=str(exc))
        return None
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("cache_value_corrupt", key=key)
        return None


def set_cache(key: str, value: Any, ttl: int | None = None) -> bool:
    payload = json.dumps(value, ensure_ascii=False, default=str)
    try:
        get_redis().setex(key, ttl or settings.CACHE_TTL, payload)
    except redis.RedisError as exc:
        logger.warning("cache_write_failed", key=key, error=str(exc))
        return False
    return True


def remember(key: str, loader: Callable[[], Any]) -> tuple[Any, bool]:
    """Return (value, hit). On a miss the loader runs and its result is cached."""
    cached = get_cache(key)
    if cached is not None:
        return cached, True
    value = loader()
    set_cache(key, value)
    return value, False


def delete_cache(key: str) -> bool:
    try:
        get_redis().delete(key)
    except redis.RedisError as exc:
        logger.warning("cache_delete_failed", key=key, error=str(exc))
        return False
    return True


def delete_cache_pattern(pattern: str) -> int:
    try:
        client = get_redis()
        keys = list(client.scan_iter(match=pattern))
        return client.delete(*keys) if keys else 0
    except redis.RedisError as exc:
        logger.warning("cache_delete_failed", pattern=pattern, error=str(exc))
        return 0


def invalidate_catalogue() -> int:
    return delete_cache_pattern(f"{CATALOGUE_PREFIX}:*")


def invalidate_course(course_id: int) -> int:
    """Drop everything cached for one course, including catalogue pages that list it."""
    return invalidate_catalogue() + delete_cache_pattern(f"course:{course_id}:*")


def ping() -> bool:
    try:
        return bool(get_redis().ping())
    except redis.RedisError:
        return False
