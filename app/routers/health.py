# =============================================================================
# app/routers/health.py - Health Check Endpoints
# =============================================================================
# Provides health check endpoints for monitoring and load balancers.
#
# /health never touches the database, so it answers 200 even while the
# database is down. /health/ready is the probe that checks connectivity.
# =============================================================================

import time
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.dependencies import DatabaseDep

router = APIRouter()

# Reference point for uptime
PROCESS_STARTED_AT = time.monotonic()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def process_uptime() -> float:
    """Seconds since the process started."""
    return time.monotonic() - PROCESS_STARTED_AT


# =============================================================================
# Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: str
    uptime: float


class ChecksResponse(BaseModel):
    """Individual service checks."""
    database: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""
    status: str
    checks: ChecksResponse
    timestamp: str


class LivenessResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: str


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns basic health status for load balancers and monitoring.
    """
    return HealthResponse(
        status="ok",
        timestamp=_now(),
        uptime=process_uptime(),
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(database: DatabaseDep):
    """
    Readiness check endpoint.

    Returns whether the service is ready to accept requests.
    Answers 503 while the database is unreachable.
    """
    healthy = await database.health_check()
    response = ReadinessResponse(
        status="ready" if healthy else "degraded",
        checks=ChecksResponse(database="healthy" if healthy else "unhealthy"),
        timestamp=_now(),
    )
    if healthy:
        return response
    return JSONResponse(status_code=503, content=response.model_dump())


@router.get("/health/live", response_model=LivenessResponse)
async def liveness_check():
    """
    Liveness check endpoint.

    Returns whether the service process is alive.
    Used by Kubernetes/Docker for restart decisions.
    """
    return LivenessResponse(
        status="alive",
        timestamp=_now(),
    )
