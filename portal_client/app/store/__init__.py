"""
Store package: the orchestration core.

The ApiStore owns every query slot, mutation slot and form slot. Queries
resolve through an in-memory tier, the persistent storage tier, then the
network, with stale-while-revalidate refreshes and in-flight sharing so
concurrent identical callers cause one round trip.
"""

from .api_store import ApiStore, maybe_await
from .state import (
    CACHED_MESSAGE,
    LOADING_MESSAGE,
    READY_MESSAGE,
    FormState,
    MutationFailure,
    MutationOptions,
    MutationResult,
    MutationState,
    QueryOptions,
    QueryState,
)

__all__ = [
    "ApiStore",
    "CACHED_MESSAGE",
    "FormState",
    "LOADING_MESSAGE",
    "MutationFailure",
    "MutationOptions",
    "MutationResult",
    "MutationState",
    "QueryOptions",
    "QueryState",
    "READY_MESSAGE",
    "maybe_await",
]
