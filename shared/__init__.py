"""
Shared utilities for the Rodin Access Gateway.

This package aggregates common building blocks consumed by the gateway:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry helpers with per-attempt timeouts
- circuit_breaker: Resilient upstream call protection
- base_service: FastAPI app scaffolding (health, metrics, error handlers)

Do not import from rodin_gateway into shared/.
"""
