"""OpenAPI document synthesis from the operation registry and docs UI wiring."""

from __future__ import annotations

import logging
from typing import Any, Dict, Type

from fastapi import Depends, FastAPI
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel
from scalar_fastapi import get_scalar_api_reference

from prompt_api.config.settings import Settings
from prompt_api.operations import Operation, OperationRegistry
from prompt_api.schemas.operations import ErrorResponse, TextResponse, ValidationErrorResponse
from prompt_api.security import enforce_rate_limit
from prompt_api.utils.streaming import NDJSON_MEDIA_TYPE

logger = logging.getLogger(__name__)

REF_TEMPLATE = "#/components/schemas/{model}"


def _ref(model: Type[BaseModel]) -> Dict[str, str]:
    return {"$ref": REF_TEMPLATE.format(model=model.__name__)}


def _register_model(components: Dict[str, Any], model: Type[BaseModel]) -> None:
    schema = model.model_json_schema(ref_template=REF_TEMPLATE)
    for name, definition in schema.pop("$defs", {}).items():
        components[name] = definition
    components[model.__name__] = schema


def operation_request_schema(operation: Operation) -> Dict[str, Any]:
    """JSON schema of an operation's body: every declared field, all required strings."""
    return {
        "type": "object",
        "properties": {field: {"type": "string", "minLength": 1} for field in operation.input_fields},
        "required": list(operation.input_fields),
    }


def operation_path_item(operation: Operation) -> Dict[str, Any]:
    success_content: Dict[str, Any] = {"application/json": {"schema": _ref(TextResponse)}}
    if operation.streaming:
        success_content = {
            NDJSON_MEDIA_TYPE: {
                "schema": _ref(TextResponse),
                "description": "One JSON object per line, one line per generated chunk",
            }
        }

    return {
        operation.method.lower(): {
            "operationId": operation.id,
            "summary": operation.description,
            "tags": ["operations"],
            "requestBody": {
                "required": True,
                "content": {"application/json": {"schema": operation_request_schema(operation)}},
            },
            "responses": {
                "200": {"description": "Successful operation", "content": success_content},
                "400": {
                    "description": "Invalid or missing input fields",
                    "content": {"application/json": {"schema": _ref(ValidationErrorResponse)}},
                },
                "429": {"description": "Too many requests"},
                "500": {
                    "description": "Internal server error",
                    "content": {"application/json": {"schema": _ref(ErrorResponse)}},
                },
            },
        }
    }


def build_openapi_schema(app: FastAPI, registry: OperationRegistry) -> Dict[str, Any]:
    """Build the OpenAPI document: FastAPI's own routes plus one path per operation."""
    schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
        contact=app.contact,
        license_info=app.license_info,
    )

    components = schema.setdefault("components", {}).setdefault("schemas", {})
    for model in (TextResponse, ErrorResponse, ValidationErrorResponse):
        _register_model(components, model)

    paths = schema.setdefault("paths", {})
    for operation in registry:
        paths.setdefault(operation.route, {}).update(operation_path_item(operation))

    logger.debug("OpenAPI document built with %d operation path(s)", len(registry))
    return schema


def install_openapi(app: FastAPI, registry: OperationRegistry) -> Dict[str, Any]:
    """Build the document once and make FastAPI serve it as-is."""
    app.openapi_schema = build_openapi_schema(app, registry)
    return app.openapi_schema


def register_docs_ui(app: FastAPI, settings: Settings) -> None:
    """Serve the OpenAPI document and the docs UI behind the client rate limit.

    The UI on ``settings.docs_url`` is the Scalar API reference, or Swagger UI
    when ``use_scalar_docs`` is off.
    """
    app.state.docs_url = settings.docs_url
    limited = [Depends(enforce_rate_limit)]

    @app.get(settings.openapi_url, include_in_schema=False, dependencies=limited)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    if settings.use_scalar_docs:

        @app.get(settings.docs_url, include_in_schema=False, dependencies=limited)
        async def scalar_html():
            return get_scalar_api_reference(
                openapi_url=settings.openapi_url,
                title=app.title,
            )

    else:

        @app.get(settings.docs_url, include_in_schema=False, dependencies=limited)
        async def swagger_ui_html() -> HTMLResponse:
            return get_swagger_ui_html(
                openapi_url=settings.openapi_url,
                title=f"{app.title} - Swagger UI",
            )
