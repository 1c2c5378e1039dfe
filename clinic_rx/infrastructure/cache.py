from typing import Optional, Any
import json
import logging
import redis.asyncio as redis
from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RedisManager:
    """Redis connection manager"""

    def __init__(self):
        self._redis_client: Optional[Redis] = None
        self._is_connected = False

    async def connect(self, redis_url: str) -> None:
        """Establish Redis connection"""
        try:
            self._redis_client = redis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=False,
                max_connections=20,
                retry_on_timeout=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                health_check_interval=30
            )

            # Test connection
            await self._redis_client.ping()
            self._is_connected = True
            logger.info("Redis connection established")

        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._is_connected = False
            raise

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self._redis_client:
            await self._redis_client.aclose()
            self._redis_client = None
            self._is_connected = False
            logger.info("Redis connection closed")

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @property
    def client(self) -> Redis:
        """Get Redis client"""
        if not self._is_connected or not self._redis_client:
            raise RuntimeError("Redis is not connected")
        return self._redis_client


class CacheService:
    """JSON cache with a per-key time to live.

    Passed explicitly to the components that cache (medicine search); there
    is no module-level cache instance. Cache failures are logged and reported
    as a miss so callers fall through to the catalog.
    """

    DEFAULT_TTL = 300

    def __init__(self, redis_client: Redis, default_ttl: Optional[int] = None):
        self.redis = redis_client
        self.default_ttl = default_ttl or self.DEFAULT_TTL

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        try:
            value = await self.redis.get(key)
            if value is None:
                return None
            if isinstance(value, bytes):
                value = value.decode('utf-8')
            return json.loads(value)

        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Dropping undecodable cache entry {key}: {e}")
            await self.delete(key)
            return None
        except redis.RedisError as e:
            logger.error(f"Cache get error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache"""
        try:
            serialized_value = json.dumps(value, default=str).encode('utf-8')
            return bool(await self.redis.setex(key, ttl or self.default_ttl, serialized_value))
        except redis.RedisError as e:
            logger.error(f"Cache set error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from cache"""
        try:
            result = await self.redis.delete(key)
            return result > 0
        except redis.RedisError as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            return False


async def build_catalog_cache(manager: RedisManager, redis_url: Optional[str], ttl: int) -> Optional[CacheService]:
    """Cache for medicine search, or None when Redis is not configured or unreachable"""
    if not redis_url:
        return None
    if not manager.is_connected:
        try:
            await manager.connect(redis_url)
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Redis unavailable; medicine search runs uncached: {e}")
            await manager.disconnect()
            return None
    return CacheService(manager.client, default_ttl=ttl)
