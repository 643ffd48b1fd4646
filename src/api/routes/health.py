from __future__ import annotations

from datetime import UTC, datetime

import redis.asyncio as aioredis
import structlog
from fastapi import APIRouter
from sqlalchemy import text
from src.core.config import get_settings
from src.infrastructure.db.session import get_session_factory

router = APIRouter(tags=["Observability"])
logger = structlog.get_logger()


async def check_database() -> dict:
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "message": str(e)[:100]}


async def check_redis() -> dict:
    """Redis backs the event and deadline-sweep queues."""
    try:
        client = aioredis.from_url(get_settings().redis_url)
        try:
            await client.ping()
        finally:
            await client.aclose()
        return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "message": str(e)[:100]}


@router.get("/health", summary="Service health check")
async def health_check() -> dict:
    """Report service version and whether the database and queue broker answer."""
    settings = get_settings()
    datastores = {"database": await check_database(), "redis": await check_redis()}
    degraded = any(item["status"] != "ok" for item in datastores.values())

    payload = {
        "service": settings.app_name,
        "version": settings.version,
        "environment": settings.environment,
        "status": "degraded" if degraded else "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "datastores": datastores,
    }
    logger.info("health_check", status=payload["status"], datastores=datastores)
    return payload
