"""Health check endpoints.

Provides:
- Basic liveness check (/health/)
- Deep dependency check (/health/health)
- Detailed system status (/health/status)
"""

import platform
import sys
import time
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text

from app.config import get_settings

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("/", response_model=dict[str, Any])
async def root() -> dict[str, Any]:
    """
    Get API root information and version.
    Used as a simple liveness check.
    """
    settings = get_settings()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
    }


@router.get("/health", response_model=dict[str, Any])
async def health_check() -> dict[str, Any]:
    """
    Health check with dependency verification.
    Pings the database; returns 503 when it is down.
    """
    from db import database

    checks: dict[str, str] = {}
    try:
        async with database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        checks["database"] = "unavailable"

    from notifications.manager import get_notification_manager

    channels = get_notification_manager().get_status()["channels"]
    checks["channels"] = ",".join(sorted(channels)) or "none"

    if checks["database"] == "unavailable":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "checks": checks},
        )

    return {"status": "healthy", **checks}


@router.get("/status", response_model=dict[str, Any])
async def system_status() -> dict[str, Any]:
    """
    Detailed system status including uptime, versions, and component health.
    Intended for admin dashboards and monitoring.
    """
    from services.signature_expiration import sweep_status

    settings = get_settings()
    uptime_seconds = time.monotonic() - _start_time
    hours, remainder = divmod(int(uptime_seconds), 3600)
    minutes, seconds = divmod(remainder, 60)

    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "started_at": _start_datetime,
        "uptime": f"{hours}h {minutes}m {seconds}s",
        "uptime_seconds": round(uptime_seconds, 1),
        "python": {
            "version": sys.version,
            "platform": platform.platform(),
        },
        "components": {
            "api": "running",
            "database": "configured",
            "celery": "configured",
            "signature_sweep_hours": settings.SIGNATURE_SWEEP_INTERVAL_HOURS,
            "last_signature_sweep": sweep_status.to_dict()["last_run_at"],
            "outbox_batch_size": settings.OUTBOX_BATCH_SIZE,
        },
    }
