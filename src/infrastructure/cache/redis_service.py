import redis
import json
import logging
from typing import Optional, Any

logger = logging.getLogger(__name__)

class RedisService:
    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url
        self.client = None
        if self.redis_url:
            try:
                self.client = redis.from_url(self.redis_url, decode_responses=True)
                # Test connection
                self.client.ping()
                logger.info("Connected to Redis for leaderboard caching.")
            except redis.RedisError as e:
                logger.warning(f"Failed to connect to Redis: {e}. Caching disabled.")
                self.client = None
        else:
            logger.info("REDIS_URL not set. Caching disabled.")

    def get(self, key: str) -> Optional[Any]:
        if not self.client:
            return None
        try:
            data = self.client.get(key)
            if data:
                return json.loads(data)
            return None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis get error: {e}")
            return None

    def set(self, key: str, value: Any, ttl_seconds: int = 60):
        if not self.client:
            return
        try:
            # Pydantic models & lists of them
            if hasattr(value, "model_dump_json"):
                serialized = value.model_dump_json()
            else:
                serialized = json.dumps(
                    value,
                    default=lambda o: o.model_dump() if hasattr(o, "model_dump") else str(o)
                )

            self.client.setex(key, ttl_seconds, serialized)
        except redis.RedisError as e:
            logger.warning(f"Redis set error: {e}")

    def delete(self, key: str):
        if not self.client:
            return
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Redis delete error: {e}")
