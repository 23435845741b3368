# backend/quotehub/services/redis_cache.py
"""
Redis-backed quote cache.

Values are JSON strings written with a TTL. A failing Redis never fails a
quote request: errors are logged and treated as a cache miss, so the caller
falls back to the upstream provider.

Usage:
    cache = RedisCacheService(redis.Redis.from_url(settings.redis_url, decode_responses=True))

    key = cache.get_quote_key(DataSource.YAHOO, "AAPL")
    cache.set(key, json.dumps(quote), ttl=60)
    cached = cache.get(key)
"""

import logging

import redis

from quotehub.models import DataSource

logger = logging.getLogger(__name__)


def create_redis_client(url: str, socket_timeout: float = 2.0) -> redis.Redis:
    """Client decoding responses to str. Connects lazily on first command."""
    return redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )


class RedisCacheService:
    """Thin wrapper around a redis client with logged, non-raising failures."""

    def __init__(self, client: redis.Redis, default_ttl: int = 60) -> None:
        self._client = client
        self._default_ttl = default_ttl

    @staticmethod
    def get_quote_key(data_source: DataSource | str, symbol: str) -> str:
        """
        Example:
            >>> RedisCacheService.get_quote_key(DataSource.YAHOO, "AAPL")
            'quote-YAHOO-AAPL'
        """
        source = data_source.value if isinstance(data_source, DataSource) else data_source
        return f"quote-{source}-{symbol}"

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Redis GET failed for key {key}: {e}")
            return None

    def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Store value for ttl seconds (default: the configured quote TTL)."""
        try:
            self._client.setex(key, ttl or self._default_ttl, value)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis SET failed for key {key}: {e}")
            return False

    def remove(self, key: str) -> bool:
        try:
            return self._client.delete(key) > 0
        except redis.RedisError as e:
            logger.warning(f"Redis DELETE failed for key {key}: {e}")
            return False

    def is_healthy(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
