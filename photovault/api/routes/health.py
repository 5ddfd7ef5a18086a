"""
Health check endpoints.

- /health: liveness (is the process running?)
- /health/ready: readiness (is the configuration complete?)
"""

import logging
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ... import __version__
from ..dependencies import SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessResponse(BaseModel):
    """Readiness check response."""
    status: str  # "ready" or "not_ready"
    version: str
    missing_fields: list[str] = []


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the service is running. Does not check dependencies.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """Liveness check. Fast, and never touches the store."""
    return HealthResponse(
        status="ok",
        version=__version__,
        details={"mock_mode": {"storage": settings.s3_mock_mode}},
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Returns 200 when configuration is complete, 503 otherwise.",
    responses={503: {"description": "Service not ready", "model": ReadinessResponse}},
)
async def readiness_check(settings: SettingsDep):
    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.warning("Readiness check failed", extra={"missing_fields": missing_fields})
        body = ReadinessResponse(status="not_ready", version=__version__, missing_fields=missing_fields)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(),
        )
    return ReadinessResponse(status="ready", version=__version__)
