"""Catch-all error middleware."""

from __future__ import annotations

import logging
import traceback
from typing import Any, Callable, Dict

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from prompt_api.utils.exceptions import LLMServiceError

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns exceptions that escaped the routes into JSON error responses.

    Service errors keep their message and map to their own status code.
    Anything else becomes a generic 500; the exception type and traceback are
    only included when ``debug`` is set.
    """

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return self.handle_exception(request, exc)

    def handle_exception(self, request: Request, exc: Exception) -> JSONResponse:
        if isinstance(exc, LLMServiceError):
            logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
            return self._json(request, exc.status_code, exc.to_dict(include_details=self.debug))

        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        content: Dict[str, Any] = {"error": "An internal error occurred", "code": "INTERNAL_ERROR"}
        if self.debug:
            content["details"] = {
                "type": type(exc).__name__,
                "traceback": traceback.format_exc(),
            }
        return self._json(request, status.HTTP_500_INTERNAL_SERVER_ERROR, content)

    @staticmethod
    def _json(request: Request, status_code: int, content: Dict[str, Any]) -> JSONResponse:
        headers = {}
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            headers["X-Request-ID"] = request_id
        return JSONResponse(status_code=status_code, content=content, headers=headers)
