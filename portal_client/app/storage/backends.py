"""
Key/value backends for the persistent cache tier.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import redis.asyncio as redis

from shared.logging import get_logger


class StorageBackend(ABC):
    """Async key/value interface shared by every persistence backend."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def close(self) -> None:
        return None


class LocalStorageBackend(StorageBackend):
    """In-process key/value map, optionally seeded."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    async def clear(self) -> None:
        self._items.clear()

    def keys(self) -> List[str]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


class RedisStorageBackend(StorageBackend):
    """Asynchronous backend over Redis, scoped to one key prefix."""

    def __init__(self, redis_url: str, key_prefix: str = ""):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.logger = get_logger("portal.storage.redis")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._redis

    async def get_item(self, key: str) -> Optional[str]:
        redis_client = await self._get_redis()
        return await redis_client.get(key)

    async def set_item(self, key: str, value: str) -> None:
        redis_client = await self._get_redis()
        await redis_client.set(key, value)

    async def remove_item(self, key: str) -> None:
        redis_client = await self._get_redis()
        await redis_client.delete(key)

    async def clear(self) -> None:
        """Delete every key under the prefix; other tenants of the keyspace stay."""
        redis_client = await self._get_redis()
        keys = [key async for key in redis_client.scan_iter(match=f"{self.key_prefix}*")]
        if keys:
            await redis_client.delete(*keys)
            self.logger.info("Cleared storage prefix", prefix=self.key_prefix, keys_count=len(keys))

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_backend(kind: str, *, redis_url: str = "", key_prefix: str = "") -> StorageBackend:
    """Build the configured backend ("local" or "redis")."""
    if kind == "local":
        return LocalStorageBackend()
    if kind == "redis":
        return RedisStorageBackend(redis_url, key_prefix=key_prefix)
    raise ValueError(f"Unknown storage backend: {kind}")
