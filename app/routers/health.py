from fastapi import APIRouter, Depends
from sqlalchemy import text

from app.dependencies import get_services
from app.services import ServiceRegistry
from app.utils.logger import create_logger
from app.utils.market_hours import utcnow

logger = create_logger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", summary="Liveness check")
async def health():
    return {"status": "ok", "timestamp": utcnow().isoformat() + "Z"}


@router.get(
    "/detailed",
    summary="Dependency health",
    description="Pings Redis and the database and reports background write counters.",
)
async def health_detailed(services: ServiceRegistry = Depends(get_services)):
    redis_ok = await services.cache.ping()

    try:
        async with services.session_factory() as session:
            await session.execute(text("SELECT 1"))
        database_ok = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database_ok = False

    return {
        "status": "ok" if redis_ok and database_ok else "degraded",
        "timestamp": utcnow().isoformat() + "Z",
        "services": {
            "redis": "up" if redis_ok else "down",
            "database": "up" if database_ok else "down",
        },
        "background_writes": services.writer.stats(),
    }
