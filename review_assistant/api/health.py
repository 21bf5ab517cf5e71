"""
Health check endpoint.

Provides application health status and readiness checks.
"""

from datetime import datetime
from typing import Any, Dict
from fastapi import APIRouter, status
from pydantic import BaseModel

from review_assistant import __version__
from review_assistant.config import settings
from review_assistant.llm.schemas import utcnow
from review_assistant.observability.errors import get_error_tracker
from review_assistant.observability.metrics import get_metrics_collector

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    environment: str
    version: str
    checks: Dict[str, Any]


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns basic application health status",
)
async def health_check():
    return HealthResponse(
        status="healthy",
        timestamp=utcnow(),
        environment=settings.ENVIRONMENT,
        version=__version__,
        checks={"api": "ok"},
    )


@router.get(
    "/ready",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns application readiness status with dependency checks",
)
async def readiness_check():
    """
    Readiness check endpoint.

    The service stays usable without an LLM key (reviews degrade), so only
    the presence of configuration is reported here.
    """
    checks: Dict[str, Any] = {}

    llm_api_key_configured = False
    if settings.LLM_PROVIDER == "anthropic":
        llm_api_key_configured = bool(settings.ANTHROPIC_API_KEY)
    elif settings.LLM_PROVIDER == "openai":
        llm_api_key_configured = bool(settings.OPENAI_API_KEY)

    checks["llm_provider"] = settings.LLM_PROVIDER
    checks["llm_api_key"] = "ok" if llm_api_key_configured else "missing"
    checks["database"] = settings.DATABASE_PATH
    checks["s3_archive"] = "ok" if settings.s3_enabled else "not_configured"

    try:
        checks["metrics"] = get_metrics_collector().get_metric_summary()
    except RuntimeError:
        checks["metrics"] = "not_initialized"

    try:
        checks["errors"] = get_error_tracker().get_error_summary()
    except RuntimeError:
        checks["errors"] = "not_initialized"

    overall_status = "ready" if llm_api_key_configured else "degraded"

    return HealthResponse(
        status=overall_status,
        timestamp=utcnow(),
        environment=settings.ENVIRONMENT,
        version=__version__,
        checks=checks,
    )


@router.get(
    "/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness check",
    description="Simple liveness check for container orchestration",
)
async def liveness_check():
    return {"status": "alive"}
