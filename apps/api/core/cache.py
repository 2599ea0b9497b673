"""
Redis access layer.

Holds the shared Redis client and the small set of counter primitives the
rate limiter needs. Everything degrades gracefully: when Redis is not
reachable the helpers return None and callers fall back to in-process state.
"""
import logging
from typing import Optional, Tuple
import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError
from core.config import settings

logger = logging.getLogger(__name__)

# Redis connection pool (singleton)
_redis_client: Optional[redis.Redis] = None
_redis_checked = False


def get_redis_client() -> Optional[redis.Redis]:
    """Get Redis client with connection pooling. Returns None if Redis unavailable."""
    global _redis_client, _redis_checked

    if _redis_client is not None or _redis_checked:
        return _redis_client

    _redis_checked = True
    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30
        )
        client.ping()
        _redis_client = client
        logger.info("Redis connection established")
        return _redis_client
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis unavailable: {e}. Using in-process counters.")
        _redis_client = None
        return None


def incr_window(client: redis.Redis, key: str, window: int) -> Tuple[int, int]:
    """
    Atomically count one request in a fixed window.

    Returns (count_after_increment, seconds_until_reset). The expiry is set
    in the same MULTI block as the first increment.
    """
    pipe = client.pipeline(transaction=True)
    pipe.incr(key)
    pipe.expire(key, window, nx=True)
    pipe.ttl(key)
    count, _, ttl = pipe.execute()
    return int(count), int(ttl) if ttl and ttl > 0 else window


def peek_window(client: redis.Redis, key: str, window: int) -> Tuple[int, int]:
    """Read a window counter without counting. Returns (count, seconds_until_reset)."""
    pipe = client.pipeline(transaction=True)
    pipe.get(key)
    pipe.ttl(key)
    value, ttl = pipe.execute()
    return int(value or 0), int(ttl) if ttl and ttl > 0 else window
