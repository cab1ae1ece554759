"""
Earnings DB API

Shared caching layer for the earnings web and mobile clients. Clients
(Redis, database engine, Polygon HTTP client) are created once in the
lifespan and shared by every service.
"""

import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import ALLOWED_ORIGINS, APP_ENV, REDIS_URL
from app.database import create_engine_from_url, create_session_factory
from app.routers import (
    earnings,
    fundamentals,
    health,
    logo_and_market_cap,
    logos,
    market_cap,
    news,
)
from app.services import ServiceRegistry
from app.utils.logger import create_logger

logger = create_logger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    redis = Redis.from_url(REDIS_URL, decode_responses=True)
    engine = create_engine_from_url()
    http = httpx.AsyncClient()

    app.state.services = ServiceRegistry.build(redis, create_session_factory(engine), http)
    logger.info(f"Earnings DB API started (env: {APP_ENV})")

    try:
        yield
    finally:
        # Let in-flight background writes land before the clients close
        await app.state.services.writer.drain()
        await http.aclose()
        await redis.aclose()
        await engine.dispose()
        logger.info("Earnings DB API stopped")


def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        use_lifespan: Create Redis/database/HTTP clients on startup. Tests
            pass False and provide services through dependency overrides.
    """
    app = FastAPI(
        title="Earnings DB API",
        version=API_VERSION,
        description="Shared database and caching layer for earnings applications",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} {duration_ms:.0f}ms")
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        if isinstance(detail, dict) and "message" in detail:
            body = {"error": detail["message"], "code": detail.get("code")}
        else:
            body = {"error": str(detail)}
        return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        body = {"error": "Internal server error"}
        if APP_ENV == "development":
            body["message"] = str(exc)
        return JSONResponse(status_code=500, content=body)

    @app.get("/", tags=["Index"], summary="Service index")
    async def index():
        return {
            "name": "Earnings DB API",
            "version": API_VERSION,
            "description": "Shared database and caching layer for earnings applications",
            "endpoints": {
                "health": "/health",
                "healthDetailed": "/health/detailed",
                "logos": {
                    "getSingle": "/api/logos/{ticker}",
                    "getMultiple": "/api/logos?tickers=AAPL,MSFT",
                    "image": "/api/logos/{ticker}/image?type=icon|logo",
                    "refresh": "/api/logos/{ticker}/refresh (POST)",
                },
                "logoAndMarketCap": "/api/logo-and-market-cap?tickers=AAPL,MSFT",
                "fundamentals": {
                    "getSingle": "/api/fundamentals?ticker=AAPL",
                    "getMultiple": "/api/fundamentals?tickers=AAPL,MSFT",
                },
                "marketCap": {"getMultiple": "/api/market-cap?tickers=AAPL,MSFT"},
                "earnings": {
                    "getRange": "/api/earnings?dateFrom=2025-01-01&dateTo=2025-01-31",
                    "getPrimary": "/api/earnings/primary?dateFrom=2025-01-01&dateTo=2025-01-31",
                    "getSecondary": "/api/earnings/secondary?dateFrom=2025-01-01&dateTo=2025-01-31",
                    "getWithImportance": "/api/earnings?dateFrom=2025-01-01&dateTo=2025-01-31&importance=5",
                },
                "news": {
                    "getAll": "/api/news?limit=50",
                    "getByTicker": "/api/news/{ticker}",
                    "getWithDateRange": "/api/news?dateFrom=2025-01-01&dateTo=2025-01-31",
                    "clearCache": "/api/news/cache/{ticker} (DELETE)",
                },
            },
        }

    app.include_router(health.router)
    app.include_router(fundamentals.router)
    app.include_router(market_cap.router)
    app.include_router(earnings.router)
    app.include_router(logos.router)
    app.include_router(logo_and_market_cap.router)
    app.include_router(news.router)

    return app


app = create_app()
