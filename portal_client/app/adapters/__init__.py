"""
Adapters package for the Portal client.

Contains the HTTP request executor and the bearer token sources it relies
on. Adapters encapsulate:

- Header construction and authentication short-circuits
- Envelope parsing and response validation
- Error mapping onto the shared error taxonomy

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .auth_token import StaticTokenProvider, StorageTokenProvider, TokenProvider
from .executor import RequestExecutor

__all__ = [
    "RequestExecutor",
    "StaticTokenProvider",
    "StorageTokenProvider",
    "TokenProvider",
]
