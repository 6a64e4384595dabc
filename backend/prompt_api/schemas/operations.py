"""Pydantic models for operation inputs and responses."""

from __future__ import annotations

import re
from typing import Annotated, Any, Dict, List, Type

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints, create_model
from pydantic import ValidationError as PydanticValidationError

from prompt_api.operations import Operation


# Same character table as validator.js escape().
ESCAPE_TABLE = str.maketrans(
    {
        "&": "&amp;",
        "\"": "&quot;",
        "'": "&#x27;",
        "<": "&lt;",
        ">": "&gt;",
        "/": "&#x2F;",
        "\\": "&#x5C;",
        "`": "&#96;",
    }
)


def escape(value: str) -> str:
    return value.translate(ESCAPE_TABLE)


def _scalar_to_text(value: Any) -> Any:
    """Accept JSON numbers and booleans as their string form."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return value


# Required, trimmed, non-empty and HTML-escaped. Numbers and booleans are
# taken as text; objects, arrays and null are rejected.
SanitizedText = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1),
    AfterValidator(escape),
    BeforeValidator(_scalar_to_text),
]


class OperationInput(BaseModel):
    """Base class of the per-operation input models.

    Fields use the declared input names as aliases, so names with spaces such
    as ``"Input Language"`` are accepted as-is. Undeclared keys are dropped.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=False)

    def to_bundle(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


def _attribute_name(field: str, index: int) -> str:
    name = re.sub(r"\W+", "_", field).strip("_").lower()
    if not name or name[0].isdigit():
        name = f"field_{index}"
    return name


def _model_name(operation: Operation) -> str:
    return "".join(part.capitalize() for part in re.split(r"\W+", operation.id) if part) + "Input"


def build_input_model(operation: Operation) -> Type[OperationInput]:
    """Create the input model validating exactly the operation's declared fields."""
    definitions: Dict[str, Any] = {}
    for index, field in enumerate(operation.input_fields):
        name = _attribute_name(field, index)
        if name in definitions:
            name = f"{name}_{index}"
        definitions[name] = (SanitizedText, Field(..., alias=field))
    return create_model(_model_name(operation), __base__=OperationInput, **definitions)


class FieldError(BaseModel):
    """One field-level validation failure."""

    type: str = "field"
    path: str
    msg: str
    location: str = "body"


class ValidationErrorResponse(BaseModel):
    errors: List[FieldError]


class TextResponse(BaseModel):
    """Response schema for a completed generation."""

    text: str


class ErrorResponse(BaseModel):
    error: str


def field_errors(exc: PydanticValidationError) -> List[FieldError]:
    """Flatten pydantic errors into field errors keyed by the declared field name."""
    return [
        FieldError(path=".".join(str(part) for part in error["loc"]), msg=error["msg"])
        for error in exc.errors(include_url=False)
    ]
