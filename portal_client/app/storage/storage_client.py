"""
Timestamped persistence for cached query results.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from shared.logging import get_logger
from .backends import StorageBackend

DEFAULT_MAX_AGE_MS = 60 * 60 * 1000

Clock = Callable[[], float]


def now_ms() -> float:
    """Wall clock in milliseconds."""
    return time.time() * 1000


@dataclass(frozen=True)
class CacheEntry:
    """A cached value plus where and when it was written."""
    data: Any
    written_at: Optional[float]
    source: str = "persistent"


class StorageClient:
    """Wraps a backend with `{data, _timestamp}` envelopes and max-age expiry.

    Backend failures are logged and degrade to a miss; callers never see them.
    """

    def __init__(
        self,
        backend: StorageBackend,
        app_name: str = "portal",
        *,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        clock: Optional[Clock] = None,
    ):
        self.backend = backend
        self.app_name = app_name
        self.max_age_ms = max_age_ms
        self.clock = clock or now_ms
        self.logger = get_logger("portal.storage")

    @property
    def key_prefix(self) -> str:
        return f"{self.app_name}-cache-"

    def storage_key(self, signature: str) -> str:
        """Generate the persistent key for a request signature."""
        return f"{self.key_prefix}{signature}"

    async def get_entry(self, key: str, max_age_ms: Optional[int] = None) -> Optional[CacheEntry]:
        """Read an entry, purging it when older than the max age."""
        try:
            value = await self.backend.get_item(key)
        except Exception as exc:
            self.logger.error("Error retrieving from storage", key=key, error=str(exc))
            return None

        if not value:
            return None

        try:
            parsed = json.loads(value)
        except (TypeError, ValueError):
            self.logger.warning("Discarding undecodable storage entry", key=key)
            await self.remove(key)
            return None

        if not (isinstance(parsed, dict) and "_timestamp" in parsed):
            # Written without an envelope; no age to check.
            return CacheEntry(data=parsed, written_at=None)

        written_at = parsed["_timestamp"]
        limit = self.max_age_ms if max_age_ms is None else max_age_ms
        age = self.clock() - written_at
        if age > limit:
            self.logger.debug("Storage entry expired", key=key, age_ms=age, max_age_ms=limit)
            await self.remove(key)
            return None

        return CacheEntry(data=parsed.get("data"), written_at=written_at)

    async def get(self, key: str, max_age_ms: Optional[int] = None) -> Optional[Any]:
        """Get the unwrapped value, or None when absent or expired."""
        entry = await self.get_entry(key, max_age_ms)
        return entry.data if entry is not None else None

    async def set(self, key: str, value: Any) -> bool:
        """Store a value wrapped with its write timestamp."""
        try:
            serialized = json.dumps({"data": value, "_timestamp": self.clock()})
            await self.backend.set_item(key, serialized)
            return True
        except Exception as exc:
            self.logger.error("Error saving to storage", key=key, error=str(exc))
            return False

    async def remove(self, key: str) -> bool:
        try:
            await self.backend.remove_item(key)
            return True
        except Exception as exc:
            self.logger.error("Error removing from storage", key=key, error=str(exc))
            return False

    async def clear(self) -> bool:
        try:
            await self.backend.clear()
            return True
        except Exception as exc:
            self.logger.error("Error clearing storage", error=str(exc))
            return False

    async def close(self) -> None:
        await self.backend.close()
