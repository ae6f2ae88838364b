"""
Portal client application package.

Typed request/response orchestration for a remote JSON API:
- Contracts: every endpoint is declared once with its schemas and roles
- Caching: in-memory and persistent tiers with stale-while-revalidate
- Deduplication: identical concurrent queries share one round trip
- Mutations: never cached, with explicit query invalidation

Structure:
- app.endpoints: Endpoint contracts, validation and URL building.
- app.adapters: HTTP request executor and bearer token sources.
- app.storage: Timestamped persistent cache over local or Redis backends.
- app.store: ApiStore, the query/mutation/form state owner.
- app.forms: Mutation and query form bindings.
- app.client: ApiClient facade and factory.
"""

from .client import ApiClient, create_api_client

__all__ = ["ApiClient", "create_api_client"]
