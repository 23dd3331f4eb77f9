"""Health check endpoints for API, database and Redis monitoring."""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from tierscan.api.dependencies import get_resources
from tierscan.core.resources import Resources
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "tierscan-api"}


@router.get("/health/deps")
async def check_dependencies(resources: Resources = Depends(get_resources)):
    """
    Check connectivity to the snapshot database and Redis.

    Example response:
    {
        "status": "healthy",
        "database": "ok",
        "redis": "ok"
    }
    """
    checks = {}

    try:
        async with resources.session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        checks["database"] = f"error: {type(e).__name__}"

    try:
        await resources.redis.ping()
        checks["redis"] = "ok"
    except Exception as e:
        logger.error(f"Redis health check failed: {e}", exc_info=True)
        checks["redis"] = f"error: {type(e).__name__}"

    healthy = all(value == "ok" for value in checks.values())
    return {"status": "healthy" if healthy else "unhealthy", **checks}
