"""
Redis cache utility for completed learning plans
"""
import json
import logging
from typing import Any, Optional

import redis

from placement_api.config import settings

logger = logging.getLogger(__name__)


class PlanCache:
    """Redis-backed plan cache; every method is a no-op when Redis is unavailable"""

    def __init__(self, url: Optional[str] = None):
        url = settings.REDIS_URL if url is None else url
        self.redis_client = None
        if not url:
            logger.info("REDIS_URL not set. Plan caching disabled.")
            return

        try:
            self.redis_client = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=5
            )
            # Test connection
            self.redis_client.ping()
            logger.info("Redis connection established")
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis connection failed: {str(e)}. Plan caching disabled.")
            self.redis_client = None

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    @staticmethod
    def plan_key(attempt_id: int) -> str:
        return f"plan:{attempt_id}"

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache

        Returns:
            Cached value or None
        """
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(key)
            if value:
                logger.info(f"Cache hit: {key}")
                return json.loads(value)
            logger.info(f"Cache miss: {key}")
            return None
        except (redis.RedisError, json.JSONDecodeError) as e:
            logger.error(f"Cache get error: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a JSON-serializable value with a TTL (default PLAN_CACHE_TTL)"""
        if not self.redis_client:
            return False

        try:
            ttl = ttl or settings.PLAN_CACHE_TTL
            self.redis_client.setex(key, ttl, json.dumps(value))
            logger.info(f"Cache set: {key} (TTL: {ttl}s)")
            return True
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.error(f"Cache set error: {str(e)}")
            return False


# Global instance
plan_cache = PlanCache()
