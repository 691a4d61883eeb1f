"""
Shared utilities for the access authorization layer.

This package aggregates common building blocks consumed by the engine:

- config: Engine configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Any cross-package logic should live here to avoid import cycles. Do not
import from service_* packages into shared/.
"""
