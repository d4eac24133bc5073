"""
Redis client utilities for basecore.

Provides lazy-initialized Redis client to avoid import-time connections.
"""

import functools

import redis

from basecore.settings import get_settings


@functools.lru_cache()
def get_redis_client() -> redis.Redis:
    """
    Get Redis client (cached).

    Uses REDIS_URL from settings; the connection is opened on first command.
    """
    return redis.from_url(get_settings().REDIS_URL, decode_responses=True)


def ensure_stream_group(
    client: redis.Redis,
    stream_name: str,
    group_name: str,
    start_id: str = "0",
) -> bool:
    """
    Ensure a consumer group exists for a stream.

    Creates the group (and the stream) if missing. Safe to call repeatedly.

    Returns:
        True if group was created, False if it already existed
    """
    try:
        client.xgroup_create(stream_name, group_name, id=start_id, mkstream=True)
        return True
    except redis.ResponseError as e:
        if "BUSYGROUP" in str(e):
            return False
        raise


def ping() -> bool:
    """Return True when Redis answers PING."""
    try:
        return bool(get_redis_client().ping())
    except redis.RedisError:
        return False
