"""
Bearer token sources for authenticated endpoints.
"""

import json
from abc import ABC, abstractmethod
from typing import Optional

from shared.logging import get_logger
from ..storage.backends import StorageBackend


class TokenProvider(ABC):
    """Supplies the current bearer token, or None when signed out."""

    @abstractmethod
    async def get_token(self) -> Optional[str]:
        ...


class StaticTokenProvider(TokenProvider):
    """Token held in memory; set_token(None) signs out."""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    async def get_token(self) -> Optional[str]:
        return self._token


class StorageTokenProvider(TokenProvider):
    """Token persisted by the auth flow under a fixed storage key."""

    def __init__(self, backend: StorageBackend, key: str):
        self.backend = backend
        self.key = key
        self.logger = get_logger("portal.auth_token")

    async def get_token(self) -> Optional[str]:
        try:
            value = await self.backend.get_item(self.key)
        except Exception as exc:
            self.logger.error("Failed to read auth token", key=self.key, error=str(exc))
            return None

        if not value:
            return None

        # The token may be stored bare or JSON-encoded.
        try:
            decoded = json.loads(value)
        except ValueError:
            return value
        if isinstance(decoded, str):
            return decoded or None
        return value

    async def set_token(self, token: Optional[str]) -> None:
        if token is None:
            await self.backend.remove_item(self.key)
        else:
            await self.backend.set_item(self.key, token)
