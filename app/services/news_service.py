"""
News Service

News articles with multi-level caching:
1. Redis cache (1 hour), keyed by ticker, date range and limit
2. Database (newest first)
3. Polygon news API
"""

from typing import List, Optional

from app.config import NEWS_CACHE_TTL, NEWS_MAX_LIMIT
from app.schemas.news import NewsArticle, NewsQuery
from app.services.upstream_client import PolygonClient
from app.stores.durable_store import NewsStore
from app.stores.fast_cache import FastCache
from app.utils.background import BackgroundWriter
from app.utils.logger import create_logger

logger = create_logger(__name__)


class NewsService:
    """Service for fetching and caching news articles."""

    def __init__(
        self,
        cache: FastCache,
        store: NewsStore,
        upstream: PolygonClient,
        writer: BackgroundWriter,
    ):
        self.cache = cache
        self.store = store
        self.upstream = upstream
        self.writer = writer

    async def get_news(self, query: NewsQuery) -> List[NewsArticle]:
        """
        Get news articles, newest first.

        Args:
            query: Ticker (optional), limit and publish date range

        Returns:
            list: NewsArticle list (may be empty)

        Raises:
            UpstreamError: When Polygon fails and nothing is cached or stored
        """
        if query.limit > NEWS_MAX_LIMIT:
            query = NewsQuery(query.ticker, NEWS_MAX_LIMIT, query.date_from, query.date_to)

        cache_key = query.cache_key()
        label = query.ticker or "general news"

        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Redis cache hit for {label}")
            return [NewsArticle.model_validate(item) for item in cached]

        try:
            stored = await self.store.find_recent(query.ticker, query.limit, query.date_from, query.date_to)
        except Exception as e:
            logger.error(f"Database read error for news ({label}): {e}", exc_info=True)
            stored = []

        if stored:
            logger.info(f"Found {len(stored)} articles in database for {label}")
            self._cache(cache_key, stored)
            return stored

        logger.info(f"Fetching news from Polygon for {label}")
        articles = await self.upstream.fetch_news(query.ticker, query.limit, query.date_from, query.date_to)
        if articles:
            self.writer.submit(self.store.upsert_articles(articles), f"persist {len(articles)} news articles")
            self._cache(cache_key, articles)
        return articles

    def _cache(self, cache_key: str, articles: List[NewsArticle]) -> None:
        payload = [article.model_dump(mode="json") for article in articles]
        self.writer.submit(self.cache.set_with_ttl(cache_key, payload, NEWS_CACHE_TTL), f"cache {cache_key}")

    async def clear_cache(self, ticker: Optional[str] = None) -> int:
        """
        Delete cached news for one ticker, or all cached news.

        Returns:
            int: Number of cache keys deleted
        """
        pattern = f"news:{ticker.upper()}:*" if ticker else "news:*"
        deleted = await self.cache.delete_pattern(pattern)
        logger.info(f"Cleared {deleted} news cache keys ({pattern})")
        return deleted
