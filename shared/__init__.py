"""
Shared utilities for the Calling Service.

This package aggregates common building blocks consumed by services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- oauth2: Client-credentials OAuth2 client (registrations, token cache)
- base_service: FastAPI application base class

Do not import from service packages into shared/.
"""
