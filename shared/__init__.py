"""
Shared utilities for the order cache service.

This package aggregates common building blocks:

- config: Service configuration via pydantic-settings
- logging: Structured logging with message correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Backoff configuration for reconnects
- base_service: FastAPI service skeleton (health, metrics, error handlers)

Do not import from service_* packages into shared/.
"""
