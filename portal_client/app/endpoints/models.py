"""
Data models describing endpoint contracts.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Mapping, Optional, Tuple, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class Methods(str, Enum):
    """HTTP methods an endpoint may declare."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


class UserRole(str, Enum):
    """Roles an endpoint may allow."""
    PUBLIC = "PUBLIC"
    CUSTOMER = "CUSTOMER"
    PARTNER_ADMIN = "PARTNER_ADMIN"
    PARTNER_EMPLOYEE = "PARTNER_EMPLOYEE"
    COURIER = "COURIER"
    ADMIN = "ADMIN"


class FieldKind(str, Enum):
    """Input kinds for declared field metadata."""
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    SELECT = "select"
    OBJECT = "object"
    ARRAY = "array"


@dataclass(frozen=True)
class FieldSpec:
    """Field metadata declared alongside a contract."""
    name: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = True
    options: Tuple[str, ...] = ()
    description: Optional[str] = None
    source: str = "request"


@dataclass(frozen=True)
class CachePolicy:
    """Per-endpoint query cache defaults; None falls back to config."""
    stale_time: Optional[int] = None
    cache_time: Optional[int] = None
    refetch_on_focus: Optional[bool] = None


@dataclass(frozen=True)
class EndpointExamples:
    """Example payloads keyed by example name."""
    payloads: Mapping[str, Any] = field(default_factory=dict)
    url_params: Mapping[str, Any] = field(default_factory=dict)
    responses: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RequestParts:
    """A validated request ready for the executor."""
    url: str
    body: Optional[str]


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    success: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E
    success: bool = field(default=False, init=False)


Result = Union[Ok[T], Err[E]]
