"""Health check endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class ComponentHealth(BaseModel):
    """Health status for a single component."""

    status: str = Field(..., description="Status: 'healthy', 'degraded', or 'unhealthy'")
    message: str = Field(..., description="Human-readable status message")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional diagnostic info")


class SystemHealth(BaseModel):
    """Overall system health status."""

    status: str = Field(..., description="Overall system status")
    components: Dict[str, ComponentHealth] = Field(..., description="Individual component statuses")
    version: str = Field(default="1.0.0", description="API version")


@router.get("/health", response_model=SystemHealth, summary="Service health check")
async def health_check(request: Request) -> SystemHealth:
    """
    Report whether the generation service and the operation registry are usable.

    The model loads on the first generation request, so an unloaded model is
    reported as ``degraded`` rather than ``unhealthy``.
    """
    components: Dict[str, ComponentHealth] = {}

    llm_service = getattr(request.app.state, "llm_service", None)
    if llm_service is None:
        components["llm"] = ComponentHealth(
            status="unhealthy",
            message="LLM service not initialized",
        )
    elif llm_service.is_ready:
        components["llm"] = ComponentHealth(
            status="healthy",
            message="LLM model loaded",
            details={"model_loaded": True},
        )
    else:
        components["llm"] = ComponentHealth(
            status="degraded",
            message="LLM model loads on first request",
            details={"model_loaded": False},
        )

    registry = getattr(request.app.state, "registry", None)
    operations = [operation.id for operation in registry] if registry is not None else []
    components["operations"] = ComponentHealth(
        status="healthy" if operations else "unhealthy",
        message=f"{len(operations)} operation(s) registered",
        details={"operations": operations},
    )

    statuses = {component.status for component in components.values()}
    if "unhealthy" in statuses:
        overall = "unhealthy"
    elif "degraded" in statuses:
        overall = "degraded"
    else:
        overall = "healthy"

    logger.debug("Health check: %s", overall)
    return SystemHealth(
        status=overall,
        components=components,
        version=request.app.version,
    )
