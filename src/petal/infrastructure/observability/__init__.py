"""Observability infrastructure for structured logging."""

from petal.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)
from petal.infrastructure.observability.middleware import RequestLoggingMiddleware
from petal.infrastructure.observability.operations import log_operation

__all__ = [
    "RequestLoggingMiddleware",
    "configure_logging",
    "get_correlation_id",
    "log_operation",
    "set_correlation_id",
]
