"""Errors raised while generating text.

Each error class carries a machine-readable ``error_code`` and the HTTP
status it maps to when it escapes to the error handling middleware.
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional


class LLMServiceError(Exception):
    """Base exception for all generation service errors.

    Attributes:
        message: Human-readable error message
        details: Additional context, only exposed in debug mode
    """

    error_code: ClassVar[str] = "LLM_ERROR"
    status_code: ClassVar[int] = 500
    default_message: ClassVar[str] = "Text generation service error"

    def __init__(self, message: Optional[str] = None, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message or self.default_message
        self.details = dict(details or {})
        super().__init__(self.message)

    def to_dict(self, include_details: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.error_code}
        if include_details and self.details:
            payload["details"] = self.details
        return payload


class ModelNotLoadedError(LLMServiceError):
    """The model could not be downloaded or loaded."""

    error_code = "MODEL_NOT_LOADED"
    status_code = 503
    default_message = "LLM model is not loaded or available"


class GenerationError(LLMServiceError):
    """The model call failed."""

    error_code = "GENERATION_FAILED"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, details)
        if cause is not None:
            self.details.update(cause=str(cause), cause_type=type(cause).__name__)
            self.__cause__ = cause


class GenerationTimeoutError(LLMServiceError):
    """The model call exceeded ``llm_request_timeout``."""

    error_code = "GENERATION_TIMEOUT"
    status_code = 504

    def __init__(self, timeout_seconds: float, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            f"Generation request timed out after {timeout_seconds} seconds",
            {**(details or {}), "timeout_seconds": timeout_seconds},
        )


class StreamCancelledError(LLMServiceError):
    """A token stream was written to after the client went away."""

    error_code = "STREAM_CANCELLED"
    status_code = 499  # nginx "client closed request"
    default_message = "Stream was cancelled by client"
