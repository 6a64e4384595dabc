"""Request context middleware: request ids, access log lines and HTTP metrics."""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from prompt_api.config.settings import Settings
from prompt_api.observability.logging import (
    ACCESS_LOGGER_NAME,
    reset_request_id,
    set_request_id,
)
from prompt_api.observability.metrics import record_http_request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def format_combined(request: Request, response: Response, when: datetime) -> str:
    """Render one access log line in Apache combined format."""
    host = request.client.host if request.client else "-"
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    http_version = request.scope.get("http_version", "1.1")
    length = response.headers.get("content-length", "-")
    referer = request.headers.get("referer", "-")
    user_agent = request.headers.get("user-agent", "-")
    timestamp = when.strftime("%d/%b/%Y:%H:%M:%S %z")
    return (
        f'{host} - - [{timestamp}] "{request.method} {target} HTTP/{http_version}" '
        f'{response.status_code} {length} "{referer}" "{user_agent}"'
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request id to every request and writes the access log."""

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings
        self.access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        token = set_request_id(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id

            route = request.scope.get("route")
            path = getattr(route, "path", "unmatched")
            record_http_request(request.method, path, response.status_code, time.perf_counter() - started)
            self.access_logger.info(format_combined(request, response, datetime.now(timezone.utc)))
            return response
        finally:
            reset_request_id(token)
