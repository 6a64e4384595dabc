"""Logging, request context and metrics."""

from prompt_api.observability.logging import configure_logging, get_request_id
from prompt_api.observability.metrics import record_external_call, register_metrics_endpoint
from prompt_api.observability.middleware import RequestContextMiddleware

__all__ = [
    "RequestContextMiddleware",
    "configure_logging",
    "get_request_id",
    "record_external_call",
    "register_metrics_endpoint",
]
