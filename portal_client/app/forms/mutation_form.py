"""
Mutation forms: field values bound to a mutating endpoint.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from shared.errors import FieldError, FormValidationError, MutationError, PortalException
from shared.logging import get_logger
from ..endpoints.contract import EndpointContract
from ..endpoints.models import FieldSpec
from ..store.api_store import ApiStore, maybe_await
from ..store.state import MutationOptions, MutationResult


class MutationForm:
    """Collects field values and submits them through ``ApiStore.run_mutation``.

    Submission state lives in the store under the contract's form id, so two
    forms bound to the same endpoint observe the same submitting flag and
    error.
    """

    def __init__(
        self,
        store: ApiStore,
        contract: EndpointContract,
        defaults: Optional[Mapping[str, Any]] = None,
        *,
        invalidate_queries: Sequence[str] = (),
    ):
        self.store = store
        self.contract = contract
        self.defaults: Dict[str, Any] = dict(defaults or {})
        self.values: Dict[str, Any] = dict(self.defaults)
        self.invalidate_queries = tuple(invalidate_queries)
        self.logger = get_logger("portal.forms.mutation")

    @property
    def form_id(self) -> str:
        return self.contract.form_id

    @property
    def fields(self) -> Tuple[FieldSpec, ...]:
        return self.contract.fields

    def set_value(self, name: str, value: Any) -> None:
        self.values[name] = value

    def set_values(self, values: Mapping[str, Any]) -> None:
        self.values.update(values)

    def reset(self) -> None:
        """Restore default values and forget any submit error."""
        self.values = dict(self.defaults)
        self.store.clear_form_error(self.form_id)

    def validate(self, url_params: Any = None) -> List[FieldError]:
        """Field errors from the request and url schemas together."""
        return self.contract.validate_request(dict(self.values), url_params).errors

    async def submit(
        self,
        url_params: Any = None,
        on_success: Optional[Callable[[MutationResult], Any]] = None,
        on_error: Optional[Callable[[PortalException], Any]] = None,
    ) -> Optional[Any]:
        """Validate then run the mutation; errors go to ``on_error``, not the caller."""
        errors = self.validate(url_params)
        if errors:
            error = FormValidationError(errors)
            self.logger.debug("Form validation failed", form_id=self.form_id, errors=error.field_errors())
            self.store.set_form_error(self.form_id, error)
            await maybe_await(on_error, error)
            return None

        request_data = dict(self.values)
        self.store.clear_form_error(self.form_id)
        self.store.set_form_submitting(self.form_id, True)
        try:
            response = await self.store.run_mutation(
                self.contract,
                request_data,
                url_params,
                MutationOptions(invalidate_queries=self.invalidate_queries),
            )
        except MutationError as error:
            self.store.set_form_error(self.form_id, error)
            await maybe_await(on_error, error)
            return None
        finally:
            self.store.set_form_submitting(self.form_id, False)

        await maybe_await(on_success, MutationResult(request_data, url_params, response))
        return response

    @property
    def is_submitting(self) -> bool:
        return self.store.form_state(self.form_id).is_submitting

    @property
    def submit_error(self) -> Optional[PortalException]:
        return self.store.form_state(self.form_id).form_error

    @property
    def error_message(self) -> Optional[str]:
        error = self.submit_error
        return error.message if error is not None else None

    @property
    def is_submit_successful(self) -> bool:
        state = self.store.mutation_state(self.contract)
        return bool(state and state.is_success) and self.submit_error is None
