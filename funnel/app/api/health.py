"""
Lead Funnel Health Endpoints
Liveness, readiness (database reachable) and a summary for dashboards
"""

import time
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import get_db, ping

router = APIRouter(prefix="/health", tags=["health"])

SERVICE_NAME = "lead-funnel"

started_at = time.time()


def _base(status: str) -> Dict[str, Any]:
    now = time.time()
    return {
        "status": status,
        "service": SERVICE_NAME,
        "version": settings.version,
        "uptime_seconds": round(now - started_at, 3),
        "timestamp": now,
    }


@router.get("")
async def health_check():
    return {**_base("healthy"), "environment": settings.environment}


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Ready once the lead store answers; external providers are optional"""
    services = {"database": "healthy" if await ping(db) else "unhealthy"}
    ready = all(state == "healthy" for state in services.values())
    return {**_base("ready" if ready else "not_ready"), "services": services}


@router.get("/live")
async def liveness_check():
    return {"status": "alive", "service": SERVICE_NAME, "timestamp": time.time()}
