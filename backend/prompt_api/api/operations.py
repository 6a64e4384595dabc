"""HTTP routes generated from the operation registry."""

from __future__ import annotations

import json
import logging
from typing import Any, List

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from prompt_api.api.dependencies import LLMServiceDep
from prompt_api.operations import Operation, OperationRegistry, StreamResult
from prompt_api.schemas.operations import (
    ErrorResponse,
    FieldError,
    TextResponse,
    ValidationErrorResponse,
    build_input_model,
    field_errors,
)
from prompt_api.security import enforce_rate_limit
from prompt_api.utils.exceptions import LLMServiceError
from prompt_api.utils.streaming import create_ndjson_response

logger = logging.getLogger(__name__)


def _validation_failure(operation: Operation, errors: List[FieldError]) -> JSONResponse:
    logger.info(
        "Rejected '%s' request: %s",
        operation.id,
        ", ".join(f"{error.path or 'body'}: {error.msg}" for error in errors),
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ValidationErrorResponse(errors=errors).model_dump(),
    )


def _error_response(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error=message).model_dump(),
    )


async def _read_body(request: Request) -> Any:
    """Decode the JSON request body; an empty body counts as an empty object."""
    body = await request.body()
    if not body.strip():
        return {}
    return json.loads(body)


def _make_endpoint(operation: Operation):
    input_model = build_input_model(operation)

    async def run_operation(request: Request, llm_service: LLMServiceDep) -> Response:
        try:
            data = await _read_body(request)
        except ValueError:
            return _validation_failure(
                operation, [FieldError(path="", msg="Request body must be valid JSON")]
            )

        try:
            payload = input_model.model_validate(data)
        except PydanticValidationError as exc:
            return _validation_failure(operation, field_errors(exc))

        inputs = payload.to_bundle()
        logger.info("Running operation '%s'", operation.id)

        try:
            result = await operation.execute(inputs, llm_service)
        except LLMServiceError as exc:
            logger.error("Operation '%s' failed: %s", operation.id, exc.message)
            return _error_response(exc.message)
        except Exception as exc:
            logger.exception("Unexpected error in operation '%s'", operation.id)
            return _error_response(str(exc))

        if isinstance(result, StreamResult):
            logger.debug("Operation '%s' streaming response", operation.id)
            return create_ndjson_response(result.stream, request)

        return JSONResponse(content=TextResponse(text=result.text).model_dump())

    run_operation.__name__ = f"run_{operation.id.replace('-', '_')}"
    return run_operation


def build_operations_router(registry: OperationRegistry) -> APIRouter:
    """Create one route per registered operation.

    The routes stay out of FastAPI's generated schema; ``prompt_api.docs``
    describes them from the registry instead.
    """
    router = APIRouter(
        tags=["operations"],
        dependencies=[Depends(enforce_rate_limit)],
    )
    for operation in registry:
        router.add_api_route(
            operation.route,
            _make_endpoint(operation),
            methods=[operation.method.upper()],
            name=operation.id,
            summary=operation.description,
            include_in_schema=False,
        )
    return router
