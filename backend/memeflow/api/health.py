# memeflow/api/health.py

from fastapi import APIRouter

from memeflow.core.config import settings
from memeflow.core.redis import redis_client
from memeflow.workflows.client import get_temporal_client

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "ok"}


@router.get("/health/detailed")
async def detailed_health_check():
    """Detailed health check including Redis, Temporal and configuration status"""

    health = {
        "status": "ok",
        "services": {}
    }

    # Check Redis
    try:
        await redis_client.client.ping()
        health["services"]["redis"] = "connected"
    except Exception as e:
        health["services"]["redis"] = f"error: {str(e)}"
        health["status"] = "degraded"

    # Check Temporal
    try:
        client = await get_temporal_client()
        await client.service_client.check_health()
        health["services"]["temporal"] = "connected"
    except Exception as e:
        health["services"]["temporal"] = f"error: {str(e)}"
        health["status"] = "degraded"

    # Check required settings
    missing = settings.missing_settings()
    if missing:
        health["services"]["config"] = f"missing: {', '.join(missing)}"
        health["status"] = "degraded"
    else:
        health["services"]["config"] = "ok"

    return health
