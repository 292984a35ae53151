"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from bestsellers.components import EngineComponents
from bestsellers.database.connection import check_database_health
from bestsellers.ranking.windows import utcnow
from bestsellers.serving.api.deps import get_components

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    components: EngineComponents = Depends(get_components),
) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Database connectivity
    - Result cache
    - Recompute scheduler
    """
    checks = {}
    overall_status = "healthy"

    db_health = await check_database_health(components.session_factory)
    checks["database"] = db_health
    if db_health.get("status") != "healthy":
        overall_status = "unhealthy"

    try:
        stats = await components.cache.stats()
        checks["cache"] = {
            "status": "healthy",
            "backend": type(components.cache).__name__,
            "size": stats.size,
            "over_soft_cap": stats.over_soft_cap,
        }
    except Exception as e:
        checks["cache"] = {"status": "unhealthy", "error": str(e)}
        if overall_status == "healthy":
            overall_status = "degraded"

    checks["recompute"] = {
        "scheduler_running": components.scheduler.running,
        "in_progress": components.recompute.is_running,
    }

    settings = components.settings
    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=utcnow(),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(
    response: Response,
    components: EngineComponents = Depends(get_components),
) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.

    Returns 200 if the order ledger is reachable.
    """
    db_health = await check_database_health(components.session_factory)
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}

    return {"status": "ready"}
