"""
Health check endpoints.

We provide two endpoints:
- /health: Basic liveness check (is the process running?)
- /health/ready: Readiness check (can we serve traffic?)

Readiness exercises the active storage provider and the media tools, so a
bucket with revoked credentials or a container missing ffmpeg shows up
here instead of in the first failed upload.
"""

import logging
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ...core.exceptions import ChronoFrameError
from ..dependencies import AppContextDep

logger = logging.getLogger(__name__)

router = APIRouter()

# metadata lookups on a missing key are cheap on every backend
_STORAGE_CHECK_KEY = ".health-check"


class HealthResponse(BaseModel):
    """
    Health check response.

    Standardized format makes it easy for monitoring tools to parse.
    """
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    """Individual readiness check result."""
    name: str
    status: str  # "ok" or "error"
    error: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response with details."""
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the service is running. Does not check dependencies.",
)
async def health_check(context: AppContextDep) -> HealthResponse:
    """
    Liveness check - is the process alive?

    Reports which provider is active and whether it is a fallback, but
    never touches the backend.
    """
    manager = context.storage_manager
    return HealthResponse(
        status="ok",
        version=__version__,
        details={
            "storage_provider": manager.provider_name,
            "storage_fallback_active": manager.last_error is not None,
            "encryption_enabled": context.encryption.enabled,
        }
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns 200 if the service can handle traffic. Checks storage and media tools.",
    responses={
        503: {
            "description": "Service not ready",
            "model": ReadinessResponse,
        }
    },
)
async def readiness_check(context: AppContextDep, response: Response) -> ReadinessResponse:
    """
    Readiness check - can we serve traffic?

    Returns 503 if any check fails, which tells load balancers not
    to route traffic here.
    """
    checks: list[ReadinessCheck] = []

    missing_fields = context.settings.validate_required_fields()
    if missing_fields:
        checks.append(ReadinessCheck(
            name="configuration",
            status="error",
            error=f"Missing required fields: {', '.join(missing_fields)}"
        ))
    else:
        checks.append(ReadinessCheck(name="configuration", status="ok"))

    provider = context.storage_manager.get_provider()
    try:
        await provider.get_file_meta(_STORAGE_CHECK_KEY)
        checks.append(ReadinessCheck(name="storage", status="ok"))
    except ChronoFrameError as e:
        logger.warning("Storage readiness check failed", extra={"error": str(e)})
        checks.append(ReadinessCheck(name="storage", status="error", error=str(e)))

    if await context.video_processor.check_tools_available():
        checks.append(ReadinessCheck(name="media_tools", status="ok"))
    else:
        checks.append(ReadinessCheck(
            name="media_tools",
            status="error",
            error="ffmpeg/ffprobe not available"
        ))

    all_ok = all(check.status == "ok" for check in checks)
    if not all_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        version=__version__,
        checks=checks,
    )
