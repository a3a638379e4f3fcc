"""voxrelay API - FastAPI Application."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voxrelay.api.config import settings
from voxrelay.api.dependencies import RelayServices, build_services
from voxrelay.api.routers import credentials_router, relay_router, system_router
from voxrelay.credentials.errors import CredentialError, NotFoundError
from voxrelay.inference.client import InferenceConfigurationError, InferenceError
from voxrelay.logging_config import configure_logging
from voxrelay.speech.service import SpeechConfigurationError, SpeechError


logger = structlog.get_logger(__name__)


def _error(status_code: int, error: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(error), "error": type(error).__name__},
    )


async def credential_error_handler(request: Request, exc: CredentialError) -> JSONResponse:
    logger.error("Credential error", path=request.url.path, error=str(exc))
    return _error(503, exc)


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, exc)


async def configuration_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Service not configured", path=request.url.path, error=str(exc))
    return _error(503, exc)


async def upstream_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Upstream service error", path=request.url.path, error=str(exc))
    return _error(502, exc)


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _error(400, exc)


def create_app(services: RelayServices | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Pre-built services (tests). When omitted they are built from
            the environment at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        owned = services is None
        app.state.services = services if services is not None else build_services()
        app.state.services.resolver.start()
        logger.info("voxrelay API started", api_prefix=settings.api_prefix)
        yield
        # Shutdown
        if owned:
            await app.state.services.aclose()

    app = FastAPI(
        title=settings.title,
        description=settings.description,
        version=settings.version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error mapping, most specific type wins
    app.add_exception_handler(CredentialError, credential_error_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(InferenceConfigurationError, configuration_error_handler)
    app.add_exception_handler(SpeechConfigurationError, configuration_error_handler)
    app.add_exception_handler(InferenceError, upstream_error_handler)
    app.add_exception_handler(SpeechError, upstream_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)

    # Include routers
    app.include_router(system_router, prefix=settings.api_prefix, tags=["System"])
    app.include_router(relay_router, prefix=settings.api_prefix, tags=["Relay"])
    app.include_router(credentials_router, prefix=settings.api_prefix, tags=["Credentials"])

    return app


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    configure_logging(verbose=settings.debug, json_output=settings.json_logs)
    uvicorn.run(
        "voxrelay.api.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
