"""
Health check endpoints.

We provide two endpoints:
- /healthz: Basic liveness check (is the process running?)
- /healthz/ready: Readiness check (is the configuration complete?)

Neither touches the object store; a slow Filebase must not make load
balancers pull the gateway out of rotation.
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..dependencies import SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness response."""
    ok: bool
    environment: str


class ReadinessResponse(BaseModel):
    """Readiness response with the configuration still missing."""
    ok: bool
    environment: str
    mock_mode: bool
    missing: list[str] = []


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the service is running. Does not check dependencies.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    return HealthResponse(ok=True, environment=settings.environment)


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns 200 if uploads can be served, 503 if configuration is missing.",
    responses={
        503: {
            "description": "Service not ready",
            "model": ReadinessResponse,
        }
    },
)
async def readiness_check(settings: SettingsDep):
    """
    Readiness check - can we accept uploads?

    Uploads need an API key, a bucket and (outside mock mode) storage
    credentials. Returns 503 listing whatever is missing.
    """
    missing = settings.validate_required_fields()
    response = ReadinessResponse(
        ok=not missing,
        environment=settings.environment,
        mock_mode=settings.storage_mock_mode,
        missing=missing,
    )

    if missing:
        logger.warning(
            "Readiness check failed",
            extra={"missing_fields": missing}
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(),
        )

    return response
