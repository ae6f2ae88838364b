"""
Orchestration store: query/mutation lifecycle, dedup and two-tier caching.
"""

import asyncio
import hashlib
import inspect
import json
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Sequence, Set, TYPE_CHECKING

from pydantic import BaseModel

from shared.config import PortalConfig, get_config
from shared.errors import MutationError, PortalException, normalize_error
from shared.logging import get_logger, set_signature
from ..adapters.auth_token import StorageTokenProvider, TokenProvider
from ..adapters.executor import RequestExecutor
from ..endpoints.contract import EndpointContract
from ..endpoints.models import CachePolicy, Err, Ok, Result
from ..storage.backends import create_backend
from ..storage.storage_client import CacheEntry, Clock, StorageClient, now_ms
from .state import (
    FormState,
    MutationFailure,
    MutationOptions,
    MutationResult,
    MutationState,
    QueryOptions,
    QueryState,
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

ErrorCallback = Callable[[PortalException, str], None]


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    return str(value)


async def maybe_await(callback: Optional[Callable[[Any], Any]], argument: Any) -> None:
    if callback is None:
        return
    result = callback(argument)
    if inspect.isawaitable(result):
        await result


@dataclass(frozen=True)
class _QueryCall:
    contract: EndpointContract
    data: Any
    url_params: Any
    options: QueryOptions


class ApiStore:
    """Single owner of query, mutation and form state for one application.

    Runs on one event loop. Shared maps are only written synchronously, and
    any value read before an ``await`` is re-read afterwards.
    """

    def __init__(
        self,
        config: Optional[PortalConfig] = None,
        *,
        executor: Optional[RequestExecutor] = None,
        storage: Optional[StorageClient] = None,
        token_provider: Optional[TokenProvider] = None,
        metrics: Optional["MetricsCollector"] = None,
        on_error: Optional[ErrorCallback] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or get_config()
        self.clock = clock or now_ms
        self.metrics = metrics
        self.on_error = on_error
        self.logger = get_logger("portal.store")

        if storage is None:
            backend = create_backend(
                self.config.storage_backend,
                redis_url=self.config.redis_url,
                key_prefix=f"{self.config.app_name}-",
            )
            storage = StorageClient(
                backend,
                self.config.app_name,
                max_age_ms=self.config.cache_max_age_ms,
                clock=self.clock,
            )
        self.storage = storage

        if executor is None:
            if token_provider is None:
                token_provider = StorageTokenProvider(storage.backend, self.config.token_storage_key)
            executor = RequestExecutor(self.config, token_provider, metrics=metrics)
        self.executor = executor

        self.queries: Dict[str, QueryState] = {}
        self.mutations: Dict[str, MutationState] = {}
        self.forms: Dict[str, FormState] = {}

        self._in_flight: Dict[str, "asyncio.Future[Any]"] = {}
        self._background: Set["asyncio.Task[Any]"] = set()
        self._last_calls: Dict[str, _QueryCall] = {}
        self._issued_epochs: Dict[str, int] = {}
        self._applied_epochs: Dict[str, int] = {}

    # -- identity -----------------------------------------------------------

    def signature_for(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
        query_key: Optional[Sequence[Any]] = None,
    ) -> str:
        """Stable hash of the request identity, used for cache and dedup."""
        if query_key is not None:
            parts: Any = list(query_key)
        else:
            parts = [contract.path_str, contract.method.value, data, url_params]
        serialized = json.dumps(parts, sort_keys=True, separators=(",", ":"), default=_jsonable)
        return hashlib.md5(serialized.encode()).hexdigest()

    def cache_policy(self, contract: EndpointContract) -> CachePolicy:
        """Contract cache policy with config defaults filled in."""
        policy = contract.cache_policy
        return CachePolicy(
            stale_time=self.config.default_stale_time if policy.stale_time is None else policy.stale_time,
            cache_time=self.config.default_cache_time if policy.cache_time is None else policy.cache_time,
            refetch_on_focus=(
                self.config.default_refetch_on_focus
                if policy.refetch_on_focus is None
                else policy.refetch_on_focus
            ),
        )

    def query_state(self, signature: str) -> Optional[QueryState]:
        return self.queries.get(signature)

    def mutation_state(self, contract: EndpointContract) -> Optional[MutationState]:
        return self.mutations.get(contract.mutation_id)

    # -- query path ---------------------------------------------------------

    def _is_fresh(self, state: Optional[QueryState], contract: EndpointContract, options: QueryOptions) -> bool:
        if state is None or state.data is None or state.is_error or state.is_cached_data:
            return False
        if state.last_fetch_time is None:
            return False
        stale_time = options.stale_time
        if stale_time is None:
            stale_time = self.cache_policy(contract).stale_time
        return self.clock() - state.last_fetch_time < stale_time

    def _deduplicate(self, options: QueryOptions) -> bool:
        if options.deduplicate_requests is None:
            return self.config.deduplicate_requests
        return options.deduplicate_requests

    async def run_query(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
        options: Optional[QueryOptions] = None,
    ) -> Optional[Any]:
        """Resolve a query through memory, persistent storage, then network.

        Never raises: failures land in the QueryState for the signature and
        ``None`` is returned.
        """
        options = options or QueryOptions()
        signature = self.signature_for(contract, data, url_params, options.query_key)
        self._last_calls[signature] = _QueryCall(contract, data, url_params, options)

        if not options.force_refresh:
            existing = self.queries.get(signature)
            fresh = self._is_fresh(existing, contract, options)
            if self.metrics:
                self.metrics.record_cache_read("memory", fresh)
            if fresh:
                if options.background_refresh:
                    self._schedule_refresh(signature, contract, data, url_params, options)
                return existing.data

        self.queries[signature] = QueryState.loading(self.queries.get(signature))

        shared = self._in_flight.get(signature)
        if shared is not None and self._deduplicate(options):
            self.logger.debug("Joining in-flight request", signature=signature, path=contract.path_str)
            if self.metrics:
                self.metrics.increment_counter("portal_in_flight_shared_total")
            return await asyncio.shield(shared)

        task = asyncio.ensure_future(self._resolve_query(signature, contract, data, url_params, options))
        # Registered before the first suspension point so same-tick callers share it.
        self._in_flight[signature] = task
        self._update_in_flight_gauge()
        return await asyncio.shield(task)

    async def _resolve_query(
        self,
        signature: str,
        contract: EndpointContract,
        data: Any,
        url_params: Any,
        options: QueryOptions,
    ) -> Optional[Any]:
        set_signature(signature)
        try:
            if not (options.disable_local_cache or options.force_refresh):
                key = self.storage.storage_key(signature)
                entry = await self.storage.get_entry(key, options.cache_duration)
                if self.metrics:
                    self.metrics.record_cache_read("persistent", entry is not None)
                if entry is not None:
                    cached = await self._show_cached(signature, contract, data, url_params, options, entry)
                    if cached is not None:
                        return cached.value
            return await self._fetch(signature, contract, data, url_params, options)
        finally:
            if self._in_flight.get(signature) is asyncio.current_task():
                del self._in_flight[signature]
            self._update_in_flight_gauge()

    async def _show_cached(
        self,
        signature: str,
        contract: EndpointContract,
        data: Any,
        url_params: Any,
        options: QueryOptions,
        entry: CacheEntry,
    ) -> Optional[Ok]:
        validated = contract.validate_response(entry.data)
        if isinstance(validated, Err):
            self.logger.warning(
                "Cached entry no longer matches response schema",
                signature=signature,
                error=validated.error.message,
            )
            await self.storage.remove(self.storage.storage_key(signature))
            return None

        self.queries[signature] = QueryState.cached(self.queries.get(signature), validated.value)
        self.logger.debug("Serving cached data", signature=signature, written_at=entry.written_at)
        self._schedule_refresh(signature, contract, data, url_params, options)
        return validated

    def _schedule_refresh(
        self,
        signature: str,
        contract: EndpointContract,
        data: Any,
        url_params: Any,
        options: QueryOptions,
    ) -> None:
        delay_ms = options.refresh_delay
        if delay_ms is None:
            delay_ms = self.config.refresh_delay_ms
        refresh_options = replace(options, force_refresh=True, background_refresh=False)

        async def refresh() -> None:
            await asyncio.sleep(delay_ms / 1000)
            await self.run_query(contract, data, url_params, refresh_options)
            state = self.queries.get(signature)
            outcome = "error" if state is not None and state.is_error else "success"
            if self.metrics:
                self.metrics.increment_counter("portal_background_refreshes_total", outcome=outcome)

        task = asyncio.ensure_future(refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _fetch(
        self,
        signature: str,
        contract: EndpointContract,
        data: Any,
        url_params: Any,
        options: QueryOptions,
    ) -> Optional[Any]:
        epoch = self._issued_epochs.get(signature, 0) + 1
        self._issued_epochs[signature] = epoch
        key = self.storage.storage_key(signature)

        built = contract.build_request(data, url_params, base_url=self.config.base_url)
        if isinstance(built, Err):
            result: Result[Any, PortalException] = built
        else:
            result = await self.executor.execute(contract, built.value.url, built.value.body)

        if epoch < self._applied_epochs.get(signature, 0):
            self.logger.info(
                "Discarding out-of-order response",
                signature=signature,
                epoch=epoch,
                applied_epoch=self._applied_epochs[signature],
            )
            current = self.queries.get(signature)
            return current.data if current is not None else None
        self._applied_epochs[signature] = epoch

        if isinstance(result, Ok):
            self.queries[signature] = QueryState.fresh(result.value, self.clock())
            try:
                if not options.disable_local_cache:
                    await self.storage.set(key, contract.dump_response(result.value))
                await maybe_await(options.on_success, result.value)
                return result.value
            except Exception as exc:
                error = normalize_error(exc)
        else:
            error = result.error

        await self.storage.remove(key)
        self.queries[signature] = QueryState.errored(self.queries.get(signature), error, self.clock())
        self._report_error(error, f"Query {contract.path_str}")
        try:
            await maybe_await(options.on_error, error)
        except Exception as exc:
            self.logger.error("Query error callback failed", signature=signature, error=str(exc))
        return None

    async def invalidate(self, signature: str) -> None:
        """Drop the persisted entry and flag the memory slot stale."""
        await self.storage.remove(self.storage.storage_key(signature))
        existing = self.queries.get(signature)
        if existing is not None:
            self.queries[signature] = replace(existing, is_cached_data=True)
        self.logger.debug("Invalidated query", signature=signature)

    def remove(self, signature: str) -> None:
        """Forget the memory slot; an in-flight call may still repopulate it."""
        self.queries.pop(signature, None)
        self._last_calls.pop(signature, None)
        self._issued_epochs.pop(signature, None)
        self._applied_epochs.pop(signature, None)

    async def refetch(self, signature: str) -> Optional[Any]:
        """Re-run the last query seen for a signature, bypassing caches."""
        call = self._last_calls.get(signature)
        if call is None:
            return None
        options = replace(call.options, force_refresh=True, background_refresh=False)
        return await self.run_query(call.contract, call.data, call.url_params, options)

    async def clear_cache(self) -> None:
        """Wipe persisted entries and every query slot."""
        await self.storage.clear()
        self.queries.clear()
        self._last_calls.clear()
        # A pending fetch keeps its epochs so a late response is still ordered.
        for epochs in (self._issued_epochs, self._applied_epochs):
            for signature in [key for key in epochs if key not in self._in_flight]:
                del epochs[signature]

    # -- mutation path ------------------------------------------------------

    async def run_mutation(
        self,
        contract: EndpointContract,
        data: Any = None,
        url_params: Any = None,
        options: Optional[MutationOptions] = None,
    ) -> Any:
        """Execute a mutation; raises MutationError on any failure."""
        options = options or MutationOptions()
        mutation_id = contract.mutation_id
        self.mutations[mutation_id] = MutationState.pending()

        built = contract.build_request(data, url_params, base_url=self.config.base_url)
        if isinstance(built, Err):
            self.logger.debug("Mutation rejected by contract", path=contract.path_str, error=built.error.message)
            result: Result[Any, PortalException] = built
        else:
            result = await self.executor.execute(contract, built.value.url, built.value.body)

        if isinstance(result, Err):
            await self._fail_mutation(contract, data, url_params, options, result.error)

        self.mutations[mutation_id] = MutationState.succeeded(result.value)
        try:
            for signature in options.invalidate_queries:
                await self.invalidate(signature)
            await maybe_await(options.on_success, MutationResult(data, url_params, result.value))
        except Exception as exc:
            await self._fail_mutation(contract, data, url_params, options, normalize_error(exc))
        return result.value

    async def _fail_mutation(
        self,
        contract: EndpointContract,
        data: Any,
        url_params: Any,
        options: MutationOptions,
        cause: PortalException,
    ) -> None:
        error = cause if isinstance(cause, MutationError) else MutationError(
            contract.method.value, contract.path_str, cause
        )
        self.mutations[contract.mutation_id] = MutationState.failed(error)
        self._report_error(error, f"Mutation {contract.path_str}")
        await maybe_await(options.on_error, MutationFailure(error, data, url_params))
        raise error

    # -- form state ---------------------------------------------------------

    def form_state(self, form_id: str) -> FormState:
        return self.forms.get(form_id, FormState())

    def set_form_error(self, form_id: str, error: Optional[PortalException]) -> None:
        self.forms[form_id] = replace(self.form_state(form_id), form_error=error)

    def clear_form_error(self, form_id: str) -> None:
        self.set_form_error(form_id, None)

    def set_form_submitting(self, form_id: str, submitting: bool) -> None:
        self.forms[form_id] = replace(self.form_state(form_id), is_submitting=submitting)

    def set_form_query_params(self, form_id: str, params: Dict[str, Any]) -> None:
        self.forms[form_id] = replace(self.form_state(form_id), query_params=dict(params))

    def get_form_query_params(self, form_id: str) -> Optional[Dict[str, Any]]:
        return self.form_state(form_id).query_params

    # -- housekeeping -------------------------------------------------------

    def _report_error(self, error: PortalException, context: str) -> None:
        self.logger.error(f"[{context}] Error: {error.message}", error_type=error.code)
        if self.on_error is None:
            return
        try:
            self.on_error(error, context)
        except Exception as exc:
            self.logger.error("Global error callback failed", error=str(exc))

    def _update_in_flight_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("portal_in_flight_requests", len(self._in_flight))

    async def join_background_refreshes(self) -> None:
        """Wait until every scheduled background refresh has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.executor.aclose()
        await self.storage.close()
