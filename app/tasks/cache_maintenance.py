"""
Cache Maintenance Background Tasks

Celery tasks that run the async services on a schedule:
1. purge_incomplete_reference_cache: Hourly, deletes cached fundamentals
   that fail the completeness check so the next read refetches them
2. prefetch_upcoming_earnings: Every 30 minutes, pulls the coming week's
   calendar into the database and warms market caps for its tickers

Each run builds its own clients, waits for background writes to finish,
and closes everything before returning.
"""

import asyncio
from contextlib import asynccontextmanager

import httpx
from redis.asyncio import Redis

from app.celery_app import celery_app
from app.config import REDIS_URL
from app.database import create_engine_from_url, create_session_factory
from app.services import ServiceRegistry
from app.utils.logger import create_logger

logger = create_logger(__name__)


@asynccontextmanager
async def open_services():
    """Service registry over fresh clients; pending writes are drained on exit."""
    redis = Redis.from_url(REDIS_URL, decode_responses=True)
    engine = create_engine_from_url()
    http = httpx.AsyncClient()
    services = ServiceRegistry.build(redis, create_session_factory(engine), http)

    try:
        yield services
    finally:
        await services.writer.drain()
        await http.aclose()
        await redis.aclose()
        await engine.dispose()


async def _purge_incomplete_reference_cache() -> dict:
    async with open_services() as services:
        deleted = await services.reference.purge_incomplete_cache()
    return {"status": "success", "deleted": deleted}


async def _prefetch_upcoming_earnings(days: int) -> dict:
    async with open_services() as services:
        events = await services.calendar.prefetch_upcoming(days)
        stats = services.writer.stats()
    return {"status": "success", "events": events, "writes_submitted": stats["submitted"]}


@celery_app.task(bind=True, max_retries=3)
def purge_incomplete_reference_cache(self):
    """
    Delete cached reference records missing any required field.
    """
    try:
        result = asyncio.run(_purge_incomplete_reference_cache())
        logger.info(f"Purged {result['deleted']} incomplete reference cache entries")
        return result
    except Exception as e:
        logger.error(f"Error purging incomplete reference cache: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=300)


@celery_app.task(bind=True, max_retries=3)
def prefetch_upcoming_earnings(self, days: int = 7):
    """
    Fetch the next `days` of earnings so the database can serve them if
    Polygon is unavailable, and fill market caps for new tickers.
    """
    try:
        result = asyncio.run(_prefetch_upcoming_earnings(days))
        logger.info(f"Prefetched {result['events']} upcoming earnings events")
        return result
    except Exception as e:
        logger.error(f"Error prefetching upcoming earnings: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=60)
