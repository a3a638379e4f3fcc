"""Credentials router - resolver health and manual refresh."""

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from voxrelay.api.dependencies import RelayServices, get_services
from voxrelay.credentials.models import HealthStatus, StrategyName


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/credentials")


class RefreshResponse(BaseModel):
    """Outcome of a credential refresh."""

    status: str
    strategy: StrategyName | None
    failed_attempts: list[str]


@router.get("/health", response_model=HealthStatus, response_model_by_alias=True)
async def credential_health(services: RelayServices = Depends(get_services)) -> HealthStatus:
    """Snapshot of the credential resolver."""
    return services.resolver.get_health_status()


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_credentials(services: RelayServices = Depends(get_services)) -> RefreshResponse:
    """Re-run the credential chain. Failures surface as 503."""
    resolver = services.resolver
    await resolver.refresh_credentials()
    return RefreshResponse(
        status="refreshed",
        strategy=resolver.strategy,
        failed_attempts=[f"{a.strategy.value}: {a.error_message}" for a in resolver.attempts],
    )
