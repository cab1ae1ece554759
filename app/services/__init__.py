"""
Services

Wiring for the cache-aside services. Both the FastAPI lifespan and the
Celery tasks build one ServiceRegistry over shared clients.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.services.branding_service import BrandingService
from app.services.calendar_service import CalendarService
from app.services.news_service import NewsService
from app.services.reference_service import ReferenceService
from app.services.upstream_client import PolygonClient
from app.stores.durable_store import EarningStore, FundamentalStore, LogoStore, NewsStore
from app.stores.fast_cache import FastCache
from app.utils.background import BackgroundWriter


@dataclass
class ServiceRegistry:
    cache: FastCache
    session_factory: async_sessionmaker
    writer: BackgroundWriter
    reference: ReferenceService
    calendar: CalendarService
    branding: BrandingService
    news: NewsService

    @classmethod
    def build(
        cls,
        redis: Redis,
        session_factory: async_sessionmaker,
        http: httpx.AsyncClient,
        writer: Optional[BackgroundWriter] = None,
    ) -> "ServiceRegistry":
        """
        Build every service over shared Redis, database and HTTP clients.

        Args:
            redis: redis.asyncio client
            session_factory: Async session factory
            http: httpx.AsyncClient used for Polygon
            writer: Background writer (a new one is created if omitted)
        """
        cache = FastCache(redis)
        upstream = PolygonClient(http)
        writer = writer or BackgroundWriter()

        reference = ReferenceService(cache, FundamentalStore(session_factory), upstream, writer)
        return cls(
            cache=cache,
            session_factory=session_factory,
            writer=writer,
            reference=reference,
            calendar=CalendarService(cache, EarningStore(session_factory), upstream, reference, writer),
            branding=BrandingService(cache, LogoStore(session_factory), upstream, writer),
            news=NewsService(cache, NewsStore(session_factory), upstream, writer),
        )
