"""Health check endpoints for the PR review bot.

This module provides endpoints for monitoring application health,
readiness, and liveness. Used by orchestration systems like Kubernetes.
"""

from enum import Enum
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from api.dependencies import SettingsDep, current_dispatcher
from core.dispatch import Dispatcher, DispatcherStats

router = APIRouter(prefix="/health", tags=["Health"])


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Response model for the basic health check.

    Attributes:
        status: Overall health status.
        message: Optional status message.
    """

    status: HealthStatus = Field(..., description="Health status")
    message: str | None = Field(None, description="Optional status message")


class ReadinessResponse(BaseModel):
    """Response model for readiness check.

    Attributes:
        status: Overall readiness status.
        dispatcher: Dispatcher statistics, absent before startup.
    """

    status: HealthStatus = Field(..., description="Overall readiness status")
    dispatcher: DispatcherStats | None = Field(
        None,
        description="Background dispatcher statistics",
    )


class LivenessResponse(BaseModel):
    """Response model for liveness check."""

    status: HealthStatus = Field(..., description="Liveness status")


@router.get(
    "",
    response_model=HealthResponse,
    summary="Basic health check",
    description="Returns basic health status of the service.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """Basic health check endpoint.

    This endpoint does not check the dispatcher or GitHub.

    Returns:
        HealthResponse with healthy status.
    """
    return HealthResponse(
        status=HealthStatus.HEALTHY,
        message=f"{settings.app_name} is running",
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Checks if the background dispatcher is accepting work.",
    responses={
        status.HTTP_200_OK: {"description": "Readiness status with dispatcher stats"},
    },
)
async def readiness_check(
    dispatcher: Annotated[Dispatcher | None, Depends(current_dispatcher)],
) -> ReadinessResponse:
    """Readiness check endpoint.

    Args:
        dispatcher: The running dispatcher, or None before startup.

    Returns:
        ReadinessResponse, unhealthy unless the dispatcher is running.
    """
    if dispatcher is None:
        return ReadinessResponse(status=HealthStatus.UNHEALTHY)

    stats = dispatcher.stats()
    return ReadinessResponse(
        status=HealthStatus.HEALTHY if stats.running else HealthStatus.UNHEALTHY,
        dispatcher=stats,
    )


@router.get(
    "/live",
    response_model=LivenessResponse,
    summary="Liveness check",
    description="Checks if the application process is alive.",
)
async def liveness_check() -> LivenessResponse:
    """Liveness check endpoint.

    Returns:
        LivenessResponse with alive status.
    """
    return LivenessResponse(status=HealthStatus.HEALTHY)
