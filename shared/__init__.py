"""
Shared utilities for Route Guardian.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service skeleton (health, metrics, error handlers)
- test_helpers: Factories for tokens, key vaults and access documents

Do not import from service_* packages into shared/.
"""
