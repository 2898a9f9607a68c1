"""
Health check router.
"""
import asyncio
import logging
import time
from typing import Dict, Any

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text

from gallery_api.config import get_settings
from gallery_api.database import engine
from gallery_api.utils.prometheus_metrics import ready

logger = logging.getLogger("gallery_api.health")
router = APIRouter(prefix="/health", tags=["Health"])

settings = get_settings()

DB_CHECK_TIMEOUT_SECONDS = 1.0


async def _check_db() -> None:
    async def _select_one():
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    await asyncio.wait_for(_select_one(), timeout=DB_CHECK_TIMEOUT_SECONDS)


def _is_ready() -> bool:
    return ready._value.get() != 0


@router.get("", summary="Health check (fast)")
async def health_check() -> Dict[str, Any]:
    """
    Fast health check for load balancers: readiness flag plus a short
    database round trip.
    """
    start_time = time.perf_counter()

    if not _is_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is shutting down",
        )

    try:
        await _check_db()
    except asyncio.TimeoutError:
        logger.warning("DB health check timeout", extra={"event": "db"})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection timeout",
        )
    except Exception as e:
        logger.warning("DB health check failed", extra={"event": "db", "error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed",
        )

    return {
        "status": "healthy",
        "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
        "instance": settings.instance_ip or "unknown",
    }


@router.get("/liveness", summary="Liveness probe")
async def liveness_probe() -> Dict[str, str]:
    if not _is_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is shutting down",
        )
    return {"status": "alive"}


@router.get("/readiness", summary="Readiness probe")
async def readiness_probe() -> Dict[str, str]:
    """
    Ready when the instance is not shutting down and the database answers.
    """
    if not _is_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is not ready",
        )

    try:
        await _check_db()
    except Exception as e:
        logger.warning("Readiness check failed: DB", extra={"event": "db", "error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready",
        )

    return {"status": "ready"}
