"""
Endpoint contracts: one immutable descriptor per HTTP operation.
"""

import json
import re
from dataclasses import InitVar, dataclass, field
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote, urlencode

from pydantic import TypeAdapter, ValidationError

from shared.config import get_config
from shared.errors import ContractValidationError, FieldError, ResponseValidationError
from .models import (
    CachePolicy,
    EndpointExamples,
    Err,
    FieldSpec,
    Methods,
    Ok,
    RequestParts,
    Result,
    UserRole,
)

DEFAULT_PATH_PREFIX = "api"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@lru_cache(maxsize=None)
def _adapter(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def _field_errors(exc: ValidationError) -> List[FieldError]:
    return [
        FieldError(path=".".join(str(part) for part in error["loc"]), message=error["msg"])
        for error in exc.errors()
    ]


def _join_errors(errors: Iterable[FieldError]) -> str:
    return ", ".join(str(error) for error in errors)


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


@dataclass(frozen=True)
class ValidationOutcome:
    """Validated request and url params, or every field error found."""
    request: Any = None
    url_params: Any = None
    request_errors: Tuple[FieldError, ...] = ()
    url_errors: Tuple[FieldError, ...] = ()

    @property
    def valid(self) -> bool:
        return not (self.request_errors or self.url_errors)

    @property
    def errors(self) -> List[FieldError]:
        return [*self.request_errors, *self.url_errors]

    def to_error(self) -> ContractValidationError:
        parts = []
        if self.request_errors:
            parts.append(f"Request validation error: {_join_errors(self.request_errors)}")
        if self.url_errors:
            parts.append(f"URL parameter validation error: {_join_errors(self.url_errors)}")
        return ContractValidationError("; ".join(parts), self.errors)


@dataclass(frozen=True, eq=False)
class EndpointContract:
    """Descriptor of one endpoint: method, path, schemas and roles.

    Schemas are any type pydantic can validate (a model, ``List[Model]``...);
    ``None`` means the endpoint carries no payload in that position. Path
    segments may contain ``{name}`` placeholders filled from url params.
    """

    method: Methods
    path: Tuple[str, ...]
    response_schema: Any = None
    request_schema: Any = None
    url_schema: Any = None
    allowed_roles: FrozenSet[UserRole] = frozenset({UserRole.PUBLIC})
    description: str = ""
    cache_policy: CachePolicy = field(default_factory=CachePolicy)
    error_codes: Mapping[Any, str] = field(default_factory=dict)
    field_descriptions: Mapping[str, str] = field(default_factory=dict)
    fields: Tuple[FieldSpec, ...] = ()
    examples: EndpointExamples = field(default_factory=EndpointExamples)
    path_prefix: InitVar[Optional[str]] = DEFAULT_PATH_PREFIX

    def __post_init__(self, path_prefix: Optional[str]):
        segments = tuple(self.path)
        if not segments:
            raise ValueError("Endpoint path must contain at least one segment")
        if path_prefix and segments[0] != path_prefix:
            segments = (path_prefix, *segments)
        object.__setattr__(self, "path", segments)
        object.__setattr__(self, "method", Methods(self.method))
        object.__setattr__(self, "allowed_roles", frozenset(UserRole(role) for role in self.allowed_roles))
        object.__setattr__(self, "fields", tuple(self.fields))

    @property
    def path_str(self) -> str:
        return "/".join(self.path)

    @property
    def endpoint_id(self) -> str:
        return f"{'-'.join(self.path)}-{self.method.value}"

    @property
    def mutation_id(self) -> str:
        return f"mutation-{self.endpoint_id}"

    @property
    def form_id(self) -> str:
        return f"form-{self.endpoint_id}"

    def __repr__(self) -> str:
        return f"EndpointContract({self.method.value} /{self.path_str})"

    def requires_authentication(self) -> bool:
        return UserRole.PUBLIC not in self.allowed_roles

    def _validate(self, schema: Any, value: Any) -> Tuple[Any, List[FieldError]]:
        if schema is None:
            if value in (None, {}):
                return None, []
            return None, [FieldError(path="", message="Endpoint accepts no payload here")]
        try:
            return _adapter(schema).validate_python(value), []
        except ValidationError as exc:
            return None, _field_errors(exc)

    def validate_request(self, data: Any = None, url_params: Any = None) -> ValidationOutcome:
        """Run request data and url params through their schemas.

        Every failing field of both is reported, not only the first.
        """
        request, request_errors = None, []
        # A GET without data sends no query string at all.
        if not (data is None and self.method == Methods.GET):
            request, request_errors = self._validate(self.request_schema, data)

        url_value, url_errors = self._validate(self.url_schema, url_params)
        return ValidationOutcome(
            request=request,
            url_params=url_value,
            request_errors=tuple(request_errors),
            url_errors=tuple(url_errors),
        )

    def _dump(self, schema: Any, value: Any) -> Any:
        if schema is None or value is None:
            return None
        return _adapter(schema).dump_python(value, mode="json", by_alias=True)

    def build_path(self, url_params: Optional[Mapping[str, Any]]) -> Result[str, ContractValidationError]:
        params = url_params or {}
        missing: List[FieldError] = []

        def substitute(match: "re.Match[str]") -> str:
            name = match.group(1)
            value = params.get(name)
            if value is None:
                missing.append(FieldError(path=name, message="Missing url parameter"))
                return match.group(0)
            return quote(str(value), safe="")

        segments = [_PLACEHOLDER.sub(substitute, segment) for segment in self.path]
        if missing:
            return Err(ContractValidationError(
                f"URL parameter validation error: {_join_errors(missing)}", missing
            ))
        return Ok("/".join(segments))

    def build_request(
        self,
        data: Any = None,
        url_params: Any = None,
        *,
        base_url: str = "",
    ) -> Result[RequestParts, ContractValidationError]:
        """Validate and turn request data into a URL and optional JSON body."""
        outcome = self.validate_request(data, url_params)
        if not outcome.valid:
            return Err(outcome.to_error())

        path = self.build_path(self._dump(self.url_schema, outcome.url_params))
        if isinstance(path, Err):
            return path

        url = f"{base_url.rstrip('/')}/{path.value}"
        payload = self._dump(self.request_schema, outcome.request)

        if self.method == Methods.GET:
            if payload is None:
                return Ok(RequestParts(url=url, body=None))
            if not isinstance(payload, dict):
                return Err(ContractValidationError(
                    "Request validation error: GET request data must be an object",
                    [FieldError(path="", message="GET request data must be an object")],
                ))
            query = {key: _query_value(value) for key, value in payload.items() if value is not None}
            if query:
                url = f"{url}?{urlencode(query)}"
            return Ok(RequestParts(url=url, body=None))

        body = json.dumps(payload) if payload is not None else None
        return Ok(RequestParts(url=url, body=body))

    def validate_response(self, data: Any) -> Result[Any, ResponseValidationError]:
        if self.response_schema is None:
            return Ok(data)
        try:
            value = _adapter(self.response_schema).validate_python(data)
        except ValidationError as exc:
            errors = _field_errors(exc)
            return Err(ResponseValidationError(f"Response validation error: {_join_errors(errors)}", errors))
        return Ok(value)

    def dump_response(self, value: Any) -> Any:
        """JSON-compatible form of a validated response, for persistence."""
        if self.response_schema is None:
            return value
        return _adapter(self.response_schema).dump_python(value, mode="json", by_alias=True)

    def check_examples(self) -> Dict[str, List[FieldError]]:
        """Validate declared examples against the schemas; empty when all pass."""
        failures: Dict[str, List[FieldError]] = {}
        checks = (
            ("responses", self.response_schema, self.examples.responses),
            ("payloads", self.request_schema, self.examples.payloads),
            ("url_params", self.url_schema, self.examples.url_params),
        )
        for kind, schema, examples in checks:
            for key, value in examples.items():
                _, errors = self._validate(schema, value)
                if errors:
                    failures[f"{kind}.{key}"] = errors
        return failures

    def field_spec(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


def create_endpoint(**definition: Any) -> Dict[Methods, EndpointContract]:
    """Build a contract and key it by method so sibling definitions merge.

    Without an explicit ``path_prefix`` the configured prefix is used.
    """
    definition.setdefault("path_prefix", get_config().path_prefix)
    contract = EndpointContract(**definition)
    return {contract.method: contract}
