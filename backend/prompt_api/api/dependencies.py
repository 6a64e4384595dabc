"""Dependency injection for FastAPI endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from prompt_api.operations import OperationRegistry
from prompt_api.services.llm import LLMService


def get_llm_service(request: Request) -> LLMService:
    """Get LLM service from application state.

    Raises:
        HTTPException: If service is not available
    """
    service: LLMService | None = getattr(request.app.state, "llm_service", None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="LLM service is not available",
        )
    # The model itself loads lazily on the first generation call
    return service


def get_registry(request: Request) -> OperationRegistry:
    return request.app.state.registry


LLMServiceDep = Annotated[LLMService, Depends(get_llm_service)]
RegistryDep = Annotated[OperationRegistry, Depends(get_registry)]
