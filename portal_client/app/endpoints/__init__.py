"""
Endpoint contract package.

A contract is the declarative description of one endpoint: method, path,
request/response/url schemas, allowed roles and cache defaults. Contracts
are built once at import time and shared by every caller.
"""

from .contract import DEFAULT_PATH_PREFIX, EndpointContract, ValidationOutcome, create_endpoint
from .models import (
    CachePolicy,
    EndpointExamples,
    Err,
    FieldKind,
    FieldSpec,
    Methods,
    Ok,
    RequestParts,
    Result,
    UserRole,
)

__all__ = [
    "CachePolicy",
    "DEFAULT_PATH_PREFIX",
    "EndpointContract",
    "EndpointExamples",
    "Err",
    "FieldKind",
    "FieldSpec",
    "Methods",
    "Ok",
    "RequestParts",
    "Result",
    "UserRole",
    "ValidationOutcome",
    "create_endpoint",
]
