"""
Health Router - API endpoints for health checks and store status
"""
from fastapi import APIRouter, Depends

from ..dependencies import get_context
from ..schemas import HealthResponse
from ..services.event_infra import TelemetryContext

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/live", response_model=HealthResponse, response_model_exclude_none=True)
async def health_live():
    """Liveness probe: server process is up"""
    return HealthResponse(status="live")


@router.get("/ready", response_model=HealthResponse)
async def health_ready(ctx: TelemetryContext = Depends(get_context)):
    """Readiness probe: reports the active store and whether it is degraded"""
    return HealthResponse(
        status="degraded" if ctx.degraded else "ready",
        store=ctx.store.name,
        degraded=ctx.degraded,
    )
