"""Redis progress store for cross-process progress sharing."""

from __future__ import annotations

from typing import Any, Optional

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from ..errors import StorageError
from .base import ProgressStore


class RedisProgressStore(ProgressStore):
    """Redis-backed store; every progress key is a plain string value."""

    def __init__(self, url: str = "redis://localhost:6379/0") -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisProgressStore")

        self.url = url
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis.from_url(self.url, decode_responses=True)
        # Test connection
        await self._redis.ping()

    async def close(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    async def get(self, key: str) -> Optional[str]:
        try:
            client = await self._client()
            return await client.get(key)
        except redis.RedisError as e:
            raise StorageError(f"Redis read failed for {key}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            client = await self._client()
            await client.set(key, value)
        except redis.RedisError as e:
            raise StorageError(f"Redis write failed for {key}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            client = await self._client()
            await client.delete(key)
        except redis.RedisError as e:
            raise StorageError(f"Redis delete failed for {key}: {e}") from e
