"""System router - health checks and service status."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from voxrelay.api.config import settings
from voxrelay.api.dependencies import RelayServices, get_services
from voxrelay.credentials.models import HealthStatus


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str


class StatusResponse(BaseModel):
    """Health of every downstream dependency."""

    status: str
    credentials: HealthStatus
    inference: dict[str, Any]
    speech: dict[str, Any]
    uptime_started: str


# Track when the API started
_startup_time = datetime.now(timezone.utc)


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness endpoint. Does not wait for credentials."""
    return HealthResponse(
        status="operational",
        version=settings.version,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/status", response_model=StatusResponse, response_model_by_alias=True)
async def service_status(services: RelayServices = Depends(get_services)) -> StatusResponse:
    """Report credential, inference and speech health without blocking."""
    credentials = services.resolver.get_health_status()
    degraded = services.resolver.has_initialization_error()
    return StatusResponse(
        status="degraded" if degraded else "operational",
        credentials=credentials,
        inference=services.inference.get_health_status(),
        speech=services.speech.get_health_status(),
        uptime_started=_startup_time.isoformat(),
    )
