"""
Health check endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends

from jira_planner.api.deps import get_gateway
from jira_planner.core.config import settings
from jira_planner.core.logging import get_logger
from jira_planner.domain.planning import utc_now
from jira_planner.services.generation_gateway import GenerationGateway

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Basic health check endpoint.
    Returns application status.
    """
    return {
        "status": "healthy",
        "app": settings.app_name,
        "environment": settings.app_env,
        "timestamp": utc_now().isoformat(),
    }


@router.get("/health/ready")
async def readiness_check(
    gateway: GenerationGateway = Depends(get_gateway),
) -> dict[str, Any]:
    """
    Readiness check endpoint.
    Reports whether a model is configured and generation capacity is left.
    """
    limiter = gateway.rate_limiter
    used = limiter.get_usage(gateway.rate_limit_key)
    checks = {
        "app": True,
        "generation_model": bool(settings.generation.model),
        "rate_limit_capacity": used < limiter.max_requests,
    }

    all_healthy = all(checks.values())
    if not all_healthy:
        logger.warning("Readiness check failed", checks=checks)

    return {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks,
        "metrics": gateway.get_metrics(),
        "timestamp": utc_now().isoformat(),
    }


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.
    Simple check that the application is running.
    """
    return {"status": "alive"}
