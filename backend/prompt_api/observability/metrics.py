"""Prometheus metrics for HTTP traffic and upstream generation calls."""

from __future__ import annotations

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

HTTP_REQUESTS = Counter(
    "prompt_api_http_requests_total",
    "HTTP requests handled",
    ["method", "path", "status"],
)

HTTP_REQUEST_LATENCY = Histogram(
    "prompt_api_http_request_duration_seconds",
    "Time spent producing the HTTP response head",
    ["method", "path"],
)

EXTERNAL_CALLS = Counter(
    "prompt_api_external_calls_total",
    "Calls made to the generation provider",
    ["service", "operation", "outcome"],
)

EXTERNAL_CALL_LATENCY = Histogram(
    "prompt_api_external_call_duration_seconds",
    "Duration of calls made to the generation provider",
    ["service", "operation"],
)


def record_http_request(method: str, path: str, status_code: int, duration: float) -> None:
    HTTP_REQUESTS.labels(method=method, path=path, status=str(status_code)).inc()
    HTTP_REQUEST_LATENCY.labels(method=method, path=path).observe(duration)


OUTCOMES = ("success", "error", "cancelled")


def record_external_call(service: str, operation: str, duration: float, outcome: str = "success") -> None:
    """Record the outcome and latency of one upstream call.

    ``outcome`` is one of ``OUTCOMES``; ``"cancelled"`` marks calls abandoned
    because the client went away, not upstream failures.
    """
    if outcome not in OUTCOMES:
        raise ValueError(f"Unknown call outcome: {outcome}")
    EXTERNAL_CALLS.labels(service=service, operation=operation, outcome=outcome).inc()
    EXTERNAL_CALL_LATENCY.labels(service=service, operation=operation).observe(duration)


def register_metrics_endpoint(app: FastAPI, path: str = "/metrics") -> None:
    """Expose the default Prometheus registry on ``path``."""

    @app.get(path, include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
