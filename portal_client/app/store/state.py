"""
State snapshots tracked by the store.

Snapshots are immutable; every transition replaces the whole object under
its key so readers never observe a half-applied update.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Union

from shared.errors import MutationError, PortalException

LOADING_MESSAGE = "Loading data..."
CACHED_MESSAGE = "Showing cached data"
READY_MESSAGE = "Ready"
DISABLED_MESSAGE = "Query disabled"


@dataclass(frozen=True)
class QueryState:
    """Lifecycle of one request signature."""
    data: Any = None
    error: Optional[PortalException] = None
    is_loading: bool = False
    is_fetching: bool = False
    is_error: bool = False
    is_success: bool = False
    is_loading_fresh: bool = False
    is_cached_data: bool = False
    status_message: str = DISABLED_MESSAGE
    last_fetch_time: Optional[float] = None

    @property
    def status(self) -> str:
        if self.is_error:
            return "error"
        if self.is_success:
            return "success"
        if self.is_loading or self.is_fetching:
            return "loading"
        return "idle"

    @classmethod
    def loading(cls, previous: Optional["QueryState"]) -> "QueryState":
        """Loading snapshot that keeps any value already known."""
        if previous is None:
            return cls(
                is_loading=True,
                is_fetching=True,
                is_loading_fresh=True,
                status_message=LOADING_MESSAGE,
            )
        has_data = previous.data is not None
        return replace(
            previous,
            error=None,
            is_loading=not has_data,
            is_fetching=True,
            is_error=False,
            is_success=False,
            is_loading_fresh=not has_data,
            status_message=LOADING_MESSAGE,
        )

    @classmethod
    def cached(cls, previous: Optional["QueryState"], data: Any) -> "QueryState":
        return cls(
            data=data,
            is_success=True,
            is_cached_data=True,
            status_message=CACHED_MESSAGE,
            last_fetch_time=previous.last_fetch_time if previous else None,
        )

    @classmethod
    def fresh(cls, data: Any, fetched_at: float) -> "QueryState":
        return cls(
            data=data,
            is_success=True,
            status_message=READY_MESSAGE,
            last_fetch_time=fetched_at,
        )

    @classmethod
    def errored(
        cls,
        previous: Optional["QueryState"],
        error: PortalException,
        failed_at: float,
    ) -> "QueryState":
        return cls(
            data=previous.data if previous else None,
            error=error,
            is_error=True,
            is_cached_data=previous.is_cached_data if previous else False,
            status_message=f"Error: {error.message}",
            last_fetch_time=failed_at,
        )


@dataclass(frozen=True)
class MutationState:
    """Terminal or pending state of the latest call to one endpoint."""
    is_pending: bool = False
    is_error: bool = False
    error: Optional[MutationError] = None
    is_success: bool = False
    data: Any = None

    @classmethod
    def pending(cls) -> "MutationState":
        return cls(is_pending=True)

    @classmethod
    def succeeded(cls, data: Any) -> "MutationState":
        return cls(is_success=True, data=data)

    @classmethod
    def failed(cls, error: MutationError) -> "MutationState":
        return cls(is_error=True, error=error)


@dataclass(frozen=True)
class FormState:
    form_error: Optional[PortalException] = None
    is_submitting: bool = False
    query_params: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class MutationResult:
    request_data: Any
    url_params: Any
    response_data: Any


@dataclass(frozen=True)
class MutationFailure:
    error: MutationError
    request_data: Any
    url_params: Any


Callback = Callable[[Any], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class QueryOptions:
    """Per-call query options; None falls back to contract then config."""
    query_key: Optional[Sequence[Any]] = None
    stale_time: Optional[int] = None
    cache_duration: Optional[int] = None
    refresh_delay: Optional[int] = None
    deduplicate_requests: Optional[bool] = None
    disable_local_cache: bool = False
    force_refresh: bool = False
    background_refresh: bool = False
    on_success: Optional[Callback] = None
    on_error: Optional[Callback] = None


@dataclass(frozen=True)
class MutationOptions:
    invalidate_queries: Sequence[str] = field(default_factory=tuple)
    on_success: Optional[Callback] = None
    on_error: Optional[Callback] = None
