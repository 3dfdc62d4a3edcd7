# memeflow/core/redis.py

import redis.asyncio as redis
from typing import Optional

from memeflow.core.config import settings


class RedisClient:
    """Async Redis client wrapper"""

    def __init__(self):
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Connect to Redis"""
        self._client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        # Test connection
        await self._client.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis"""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if Redis client is connected"""
        return self._client is not None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client instance"""
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    # Convenience methods
    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(
        self,
        key: str,
        value: str,
        ex: Optional[int] = None,
        nx: bool = False
    ) -> bool:
        return await self.client.set(key, value, ex=ex, nx=nx)

    async def delete(self, key: str) -> int:
        return await self.client.delete(key)

    async def expire(self, key: str, seconds: int) -> bool:
        return await self.client.expire(key, seconds)

    # List helpers (admission queues)
    async def rpush(self, key: str, value: str) -> int:
        return await self.client.rpush(key, value)

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        return await self.client.lrange(key, start, end)

    async def lindex(self, key: str, index: int) -> Optional[str]:
        return await self.client.lindex(key, index)

    async def lrem(self, key: str, value: str, count: int = 0) -> int:
        return await self.client.lrem(key, count, value)


# Global Redis client instance
redis_client = RedisClient()
