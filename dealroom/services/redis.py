# SPDX-License-Identifier: Apache-2.0

"""
Redis cache service.

Caches organization ownership of party records so authorization checks do not
hit MongoDB on every action. The cache is optional: when Redis is unreachable
every operation degrades to a miss.
"""

import os
import json
from typing import Optional, List, Dict, Any, Union
import redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """Redis service with the standard redis-py client."""

    def __init__(self, redis_url: Optional[str] = None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Redis connection URL (redis://host:port)
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379")

        try:
            self.client = redis.from_url(self.redis_url, decode_responses=True)
            self._test_connection()
            logger.info(f"Redis service initialized successfully at {self.redis_url}")

        except Exception as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        """Test Redis connection."""
        try:
            if not self.client.ping():
                raise RedisConnectionError("Redis ping failed")
        except redis.RedisError as e:
            logger.error(f"Redis connection test failed: {str(e)}")
            raise RedisConnectionError(f"Redis connection failed: {str(e)}")

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def set(self, key: str, value: Union[str, Dict, List], ttl: Optional[int] = None) -> bool:
        """
        Set a key-value pair in Redis.

        Returns:
            True if successful, False otherwise
        """
        if not self.client:
            return False

        with tracer.start_as_current_span("redis.set") as span:
            span.set_attributes({
                "redis.key": key,
                "redis.ttl": ttl or 0
            })

            try:
                if isinstance(value, (dict, list)):
                    value = json.dumps(value)

                if ttl:
                    result = self.client.setex(key, ttl, value)
                else:
                    result = self.client.set(key, value)

                span.set_attribute("redis.result", "success")
                return bool(result)

            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis set failed for key {key}: {str(e)}")
                return False

    def get_many(self, keys: List[str]) -> Dict[str, Any]:
        """Fetch several keys at once; missing keys are left out of the result."""
        if not self.client or not keys:
            return {}

        with tracer.start_as_current_span("redis.mget") as span:
            span.set_attribute("redis.keys_count", len(keys))

            try:
                values = self.client.mget(keys)
            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis mget failed for {len(keys)} keys: {str(e)}")
                return {}

            found = {key: value for key, value in zip(keys, values) if value is not None}
            span.set_attribute("redis.hits", len(found))
            return found

    # Ownership caching

    @staticmethod
    def ownership_key(kind: str, entity_id: str) -> str:
        return f"owner:{kind}:{entity_id}"

    def cache_owners(self, owners: Dict[str, str], ttl: int = 300) -> None:
        """Cache resolved owning organizations keyed by ownership key."""
        for key, org_id in owners.items():
            self.set(key, org_id, ttl)


def create_redis_service() -> RedisService:
    """
    Factory function to create Redis service instance.

    Returns:
        RedisService instance
    """
    return RedisService()
