"""
Health Check Endpoints

Liveness and readiness checks, plus a detailed report covering the record
store, the in-memory aggregates and the optional Redis cache.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from fleetops.config import get_settings
from fleetops.database.connection import check_database_health
from fleetops.serving.cache import get_redis, is_enabled

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def _redis_check() -> Dict[str, Any]:
    if not is_enabled():
        return {"status": "disabled"}
    try:
        await get_redis().ping()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Detailed health report.

    ``unhealthy`` when the aggregates are not loaded, ``degraded`` when the
    database or Redis fails its check.
    """
    settings = get_settings()
    registry = getattr(request.app.state, "registry", None)

    # Run each dependency check
    checks = {
        "database": await check_database_health(),
        "aggregates": (
            {"status": "healthy", **registry.stats()}
            if registry is not None
            else {"status": "unhealthy", "error": "not initialized"}
        ),
        "redis": await _redis_check(),
    }

    # Determine overall status
    if registry is None:
        status = "unhealthy"
    elif checks["database"]["status"] != "healthy" or checks["redis"]["status"] == "unhealthy":
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """Ready once the aggregates are loaded and the database answers."""
    if getattr(request.app.state, "registry", None) is None:
        response.status_code = 503
        return {"status": "not_ready", "reason": "aggregates_not_loaded"}

    db_health = await check_database_health()
    if db_health["status"] != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}

    return {"status": "ready"}
