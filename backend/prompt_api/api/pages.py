"""Server-rendered landing page listing the available operations."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from prompt_api.api.dependencies import RegistryDep
from prompt_api.security import enforce_rate_limit

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter(
    tags=["pages"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def index(request: Request, registry: RegistryDep) -> HTMLResponse:
    """Serve the operation listing."""
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "title": request.app.title,
            "operations": list(registry),
            "docs_url": getattr(request.app.state, "docs_url", None),
        },
    )
