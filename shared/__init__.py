"""
Shared utilities for the Portal client.

This package aggregates common building blocks consumed by the orchestration
layer:

- config: Client configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error taxonomy and responses

Any cross-cutting logic should live here to avoid import cycles. Do not import
from portal_client into shared/
"""
