"""
Shared utilities for the Tokenization Gateway.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator and bounded confirmation polling
- base_service: FastAPI service shell

Do not import from service_* packages into shared/.
"""
