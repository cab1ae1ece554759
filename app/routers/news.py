from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.config import NEWS_DEFAULT_LIMIT, NEWS_MAX_LIMIT
from app.dependencies import get_news_service
from app.errors import internal_error
from app.schemas.news import NewsQuery
from app.services.news_service import NewsService
from app.utils.logger import create_logger

logger = create_logger(__name__)
router = APIRouter(prefix="/api/news", tags=["News"])


@router.get("", summary="Latest news articles")
async def get_news(
    ticker: Optional[str] = Query(None, description="Filter by ticker symbol"),
    limit: int = Query(NEWS_DEFAULT_LIMIT, ge=1, description=f"Maximum articles (capped at {NEWS_MAX_LIMIT})"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    service: NewsService = Depends(get_news_service),
):
    query = NewsQuery(
        ticker=ticker.upper() if ticker else None,
        limit=min(limit, NEWS_MAX_LIMIT),
        date_from=date_from,
        date_to=date_to,
    )
    try:
        articles = await service.get_news(query)
    except Exception as e:
        logger.error(f"Error fetching news ({query.cache_key()}): {e}", exc_info=True)
        raise internal_error()
    return {"count": len(articles), "results": [article.model_dump(mode="json") for article in articles]}


@router.delete("/cache", summary="Clear all cached news")
async def clear_news_cache(service: NewsService = Depends(get_news_service)):
    try:
        deleted = await service.clear_cache()
    except Exception as e:
        logger.error(f"Error clearing news cache: {e}", exc_info=True)
        raise internal_error()
    return {"message": "Cache cleared successfully", "keys_deleted": deleted}


@router.delete("/cache/{ticker}", summary="Clear cached news for a ticker")
async def clear_ticker_news_cache(
    ticker: str,
    service: NewsService = Depends(get_news_service),
):
    try:
        deleted = await service.clear_cache(ticker)
    except Exception as e:
        logger.error(f"Error clearing news cache for {ticker}: {e}", exc_info=True)
        raise internal_error()
    return {"message": "Cache cleared successfully", "keys_deleted": deleted}


@router.get("/{ticker}", summary="News for a ticker")
async def get_ticker_news(
    ticker: str,
    limit: int = Query(NEWS_DEFAULT_LIMIT, ge=1),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    service: NewsService = Depends(get_news_service),
):
    query = NewsQuery(
        ticker=ticker.upper(),
        limit=min(limit, NEWS_MAX_LIMIT),
        date_from=date_from,
        date_to=date_to,
    )
    try:
        articles = await service.get_news(query)
    except Exception as e:
        logger.error(f"Error fetching news ({query.cache_key()}): {e}", exc_info=True)
        raise internal_error()
    return {
        "ticker": query.ticker,
        "count": len(articles),
        "results": [article.model_dump(mode="json") for article in articles],
    }
