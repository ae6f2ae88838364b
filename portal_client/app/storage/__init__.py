"""
Storage package for the persistent cache tier.

Wraps every stored value with its write timestamp so reads can enforce a
max age. Two backends share one interface: an in-process synchronous map
and an asynchronous Redis store.
"""

from .backends import LocalStorageBackend, RedisStorageBackend, StorageBackend, create_backend
from .storage_client import CacheEntry, DEFAULT_MAX_AGE_MS, StorageClient, now_ms

__all__ = [
    "CacheEntry",
    "DEFAULT_MAX_AGE_MS",
    "LocalStorageBackend",
    "RedisStorageBackend",
    "StorageBackend",
    "StorageClient",
    "create_backend",
    "now_ms",
]
