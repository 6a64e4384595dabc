"""FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prompt_api.api import health, pages
from prompt_api.api.operations import build_operations_router
from prompt_api.config.settings import Settings, get_settings
from prompt_api.docs import install_openapi, register_docs_ui
from prompt_api.middleware.error_handler import ErrorHandlerMiddleware
from prompt_api.observability import (
    RequestContextMiddleware,
    configure_logging,
    register_metrics_endpoint,
)
from prompt_api.operations import OperationRegistry, default_registry
from prompt_api.security import RateLimiter
from prompt_api.services.llm import LLMService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup...")

    # The model itself is loaded lazily on the first generation request
    app.state.llm_service = LLMService(settings=app.state.settings)

    try:
        yield
    finally:
        logger.info("Application shutdown...")
        llm_service = getattr(app.state, "llm_service", None)
        if llm_service is not None:
            await llm_service.shutdown()
            app.state.llm_service = None


def create_app(
    settings: Settings | None = None,
    registry: OperationRegistry | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    registry = registry or default_registry()

    configure_logging(settings)

    application = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        lifespan=lifespan,
        # Docs routes are registered by register_docs_ui so they share the rate limit
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        license_info={
            "name": "MIT",
            "url": "https://opensource.org/licenses/MIT",
        },
    )
    application.state.settings = settings
    application.state.registry = registry
    application.state.rate_limiter = RateLimiter(settings=settings)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    debug_mode = settings.log_level.upper() == "DEBUG"
    application.add_middleware(ErrorHandlerMiddleware, debug=debug_mode)
    application.add_middleware(RequestContextMiddleware, settings=settings)

    application.include_router(pages.router)
    application.include_router(build_operations_router(registry))
    application.include_router(health.router)
    register_metrics_endpoint(application)
    register_docs_ui(application, settings)

    install_openapi(application, registry)
    logger.info("Registered %d operation(s): %s", len(registry), ", ".join(op.route for op in registry))

    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    settings = get_settings()
    logger.info("Prompt API listening at http://%s:%d", settings.host, settings.port)
    uvicorn.run(
        "prompt_api.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
