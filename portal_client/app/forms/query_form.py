"""
Query forms: filter values that drive a query endpoint.
"""

import asyncio
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional

from shared.logging import get_logger
from ..endpoints.contract import EndpointContract
from ..store.api_store import ApiStore
from ..store.state import QueryOptions, QueryState

DEFAULT_DEBOUNCE_MS = 500


class QueryForm:
    """Binds form values to the request data of a GET-style endpoint.

    With ``auto_submit`` every ``set_values`` call schedules a debounced
    update; a newer call supersedes the pending one. The values that were
    last sent are kept in the store as the form's query params.
    """

    def __init__(
        self,
        store: ApiStore,
        contract: EndpointContract,
        url_params: Any = None,
        *,
        defaults: Optional[Mapping[str, Any]] = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        auto_submit: bool = True,
        query_options: Optional[QueryOptions] = None,
    ):
        self.store = store
        self.contract = contract
        self.url_params = url_params
        self.values: Dict[str, Any] = dict(defaults or {})
        self.debounce_ms = debounce_ms
        self.auto_submit = auto_submit
        self.query_options = query_options or QueryOptions()
        self.logger = get_logger("portal.forms.query")
        self._pending: Optional["asyncio.Task[Any]"] = None

    @property
    def form_id(self) -> str:
        return self.contract.form_id

    @property
    def query_params(self) -> Dict[str, Any]:
        params = self.store.get_form_query_params(self.form_id)
        return dict(self.values) if params is None else params

    @property
    def signature(self) -> str:
        return self.store.signature_for(
            self.contract, self.query_params, self.url_params, self.query_options.query_key
        )

    @property
    def state(self) -> QueryState:
        return self.store.query_state(self.signature) or QueryState()

    @property
    def data(self) -> Any:
        return self.state.data

    @property
    def is_loading(self) -> bool:
        return self.state.is_loading

    @property
    def is_error(self) -> bool:
        return self.state.is_error

    @property
    def error(self):
        return self.state.error

    @property
    def status_message(self) -> str:
        return self.state.status_message

    async def run(self) -> Optional[Any]:
        """Run the query with the current query params."""
        return await self.store.run_query(
            self.contract, self.query_params, self.url_params, self.query_options
        )

    def set_values(self, values: Mapping[str, Any]) -> None:
        self.values.update(values)
        if self.auto_submit:
            self._schedule(dict(self.values))

    def _schedule(self, snapshot: Dict[str, Any]) -> None:
        self.cancel_pending()
        self._pending = asyncio.ensure_future(self._debounced(snapshot))

    async def _debounced(self, snapshot: Dict[str, Any]) -> None:
        await asyncio.sleep(self.debounce_ms / 1000)
        self.store.set_form_query_params(self.form_id, snapshot)
        self.logger.debug("Applying debounced query params", form_id=self.form_id)
        await self.store.run_query(self.contract, snapshot, self.url_params, self.query_options)

    def cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def wait_pending(self) -> None:
        """Wait for a scheduled debounced update to finish, if any."""
        pending = self._pending
        if pending is None or pending.cancelled():
            return
        await pending

    async def submit(self) -> Optional[Any]:
        """Apply the current values now and refetch, skipping the debounce."""
        self.cancel_pending()
        snapshot = dict(self.values)
        self.store.set_form_query_params(self.form_id, snapshot)
        options = replace(self.query_options, force_refresh=True, background_refresh=False)
        return await self.store.run_query(self.contract, snapshot, self.url_params, options)
