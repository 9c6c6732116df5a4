"""
Shared utilities for the RBAC decision core.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with user/tenant correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Do not import from service_* packages into shared/.
"""
