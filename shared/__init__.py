"""
Shared utilities for the Access Layer federation service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace and federation correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and responses
- retry: Retry decorators for bounded upstream calls
- base_service: FastAPI application scaffolding

Do not import from service packages into shared/.
"""
