"""Health check endpoints for load balancers and monitoring."""

import logging
from datetime import datetime

import redis.asyncio as redis
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from nutaria.config import settings
from nutaria.database import engine
from nutaria.utils.redis_pool import get_redis

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Liveness only; touches neither the database nor Redis."""
    return {
        "status": "ok",
        "service": "Nutaria",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check():
    """200 only when the database and Redis both answer."""
    checks = {"service": "ok", "database": "unknown", "redis": "unknown"}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Readiness: database check failed: %s", e)
        checks["database"] = f"error: {str(e)[:100]}"

    try:
        client = await get_redis()
        await client.ping()
        checks["redis"] = "ok"
    except (redis.RedisError, OSError) as e:
        logger.warning("Readiness: redis check failed: %s", e)
        checks["redis"] = f"error: {str(e)[:100]}"

    healthy = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "service": "Nutaria",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
