"""
Health Router - liveness and dependency status.
"""

import time
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.cache import cache_manager
from ..core.config import settings
from ..database import check_db_health, get_db

router = APIRouter()

# Track application start time for uptime calculation
app_start_time = time.time()


class HealthStatus(BaseModel):
    """Health status response model."""
    status: str
    timestamp: datetime
    uptime_seconds: float
    version: str
    environment: str


@router.get("/health", response_model=HealthStatus)
async def basic_health_check():
    """Basic health check endpoint for load balancers."""
    return HealthStatus(
        status="healthy",
        timestamp=datetime.utcnow(),
        uptime_seconds=time.time() - app_start_time,
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get("/api/health/detailed")
async def detailed_health_check(db: AsyncSession = Depends(get_db)):
    """Database and cache status."""
    database = await check_db_health(db)
    cache = await cache_manager.health()

    overall_status = "healthy"
    if database["status"] != "healthy":
        overall_status = "unhealthy"
    elif cache["status"] != "healthy":
        overall_status = "degraded"

    return {
        "success": overall_status != "unhealthy",
        "status": overall_status,
        "timestamp": datetime.utcnow().isoformat(),
        "uptime_seconds": round(time.time() - app_start_time, 2),
        "version": settings.app_version,
        "services": {"database": database, "cache": cache},
    }
