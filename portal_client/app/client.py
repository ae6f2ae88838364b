"""
ApiClient: contract-level facade over the store.
"""

from typing import Any, Optional, Sequence

from shared.config import PortalConfig, get_config
from shared.errors import PortalException
from shared.logging import configure_logging
from .endpoints.contract import EndpointContract
from .endpoints.models import Result
from .store.api_store import ApiStore
from .store.state import MutationOptions, MutationState, QueryOptions, QueryState


class ApiClient:
    """Callers address requests by contract and payload, never by signature."""

    def __init__(self, store: ApiStore):
        self.store = store

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def signature(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
        query_key: Optional[Sequence[Any]] = None,
    ) -> str:
        return self.store.signature_for(contract, data, url_params, query_key)

    async def query(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
        options: Optional[QueryOptions] = None,
    ) -> Optional[Any]:
        return await self.store.run_query(contract, data, url_params, options)

    async def mutate(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
        options: Optional[MutationOptions] = None,
    ) -> Any:
        return await self.store.run_mutation(contract, data, url_params, options)

    async def fetch(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
    ) -> Result[Any, PortalException]:
        """One uncached round trip, bypassing store state entirely."""
        return await self.store.executor.call(contract, data, url_params)

    def query_state(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
        query_key: Optional[Sequence[Any]] = None,
    ) -> Optional[QueryState]:
        return self.store.query_state(self.signature(contract, data, url_params, query_key))

    def mutation_state(self, contract: EndpointContract) -> Optional[MutationState]:
        return self.store.mutation_state(contract)

    async def invalidate(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
        query_key: Optional[Sequence[Any]] = None,
    ) -> None:
        await self.store.invalidate(self.signature(contract, data, url_params, query_key))

    async def refetch(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
        query_key: Optional[Sequence[Any]] = None,
    ) -> Optional[Any]:
        return await self.store.refetch(self.signature(contract, data, url_params, query_key))

    async def aclose(self) -> None:
        await self.store.aclose()


def create_api_client(
    config: Optional[PortalConfig] = None,
    *,
    setup_logging: bool = False,
    **store_kwargs: Any,
) -> ApiClient:
    """Build a client over a fresh store; extra kwargs go to ``ApiStore``."""
    config = config or get_config()
    if setup_logging:
        configure_logging(config.app_name, config.log_level)
    return ApiClient(ApiStore(config, **store_kwargs))
