"""Utility modules for the application."""

from prompt_api.utils.exceptions import (
    LLMServiceError,
    ModelNotLoadedError,
    GenerationError,
    GenerationTimeoutError,
    StreamCancelledError,
)
from prompt_api.utils.streaming import (
    NDJSONFormatter,
    TokenStream,
    create_ndjson_response,
)

__all__ = [
    "LLMServiceError",
    "ModelNotLoadedError",
    "GenerationError",
    "GenerationTimeoutError",
    "StreamCancelledError",
    "NDJSONFormatter",
    "TokenStream",
    "create_ndjson_response",
]
