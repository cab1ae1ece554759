"""
Upstream Data Client

Async Polygon.io client. One fetch per data category, each with its own
timeout and each failing independently with an UpstreamError. Results
are partial records: dicts keyed by our field names, None allowed.

The API key is added to every request here and never returned to
callers (the image proxy relies on this).
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

import httpx

from app.config import (
    BRANDING_TIMEOUT,
    EARNINGS_TIMEOUT,
    EARNINGS_UPSTREAM_LIMIT,
    NEWS_MAX_LIMIT,
    POLYGON_API_KEY,
    POLYGON_BASE_URL,
    UPSTREAM_TIMEOUT,
)
from app.errors import UpstreamError, UpstreamErrorCode
from app.schemas.calendar import CalendarEvent, EventQuery
from app.schemas.news import NewsArticle
from app.utils.logger import create_logger
from app.utils.market_hours import utcnow

logger = create_logger(__name__)

# Polygon insight sentiment -> score
SENTIMENT_SCORES = {"positive": 0.7, "negative": -0.7, "neutral": 0.0}


class PolygonClient:
    """Fetches reference, fundamentals, earnings, branding and news data."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str = POLYGON_API_KEY,
        base_url: str = POLYGON_BASE_URL,
    ):
        """
        Initialize Polygon client.

        Args:
            http: Shared httpx.AsyncClient (owned by the application lifespan)
            api_key: Polygon API key
            base_url: API root, e.g. "https://api.polygon.io"
        """
        self.http = http
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def _request(self, url: str, params: Optional[Dict], timeout: float) -> httpx.Response:
        params = dict(params or {})
        params["apiKey"] = self.api_key

        try:
            response = await self.http.get(url, params=params, timeout=timeout)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Timeout after {timeout}s: {url}", UpstreamErrorCode.TIMEOUT, retryable=True) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Request failed: {url}: {e}", UpstreamErrorCode.PROVIDER_ERROR, retryable=True) from e

        if response.status_code == 404:
            raise UpstreamError(f"Not found: {url}", UpstreamErrorCode.NOT_FOUND)
        if response.status_code == 429:
            raise UpstreamError("Rate limited by Polygon", UpstreamErrorCode.RATE_LIMITED, retryable=True)
        if response.status_code in (401, 403):
            raise UpstreamError("Polygon rejected the API key", UpstreamErrorCode.AUTH_FAILED)
        if response.status_code >= 400:
            raise UpstreamError(
                f"Polygon returned HTTP {response.status_code} for {url}",
                UpstreamErrorCode.PROVIDER_ERROR,
                retryable=response.status_code >= 500,
            )
        return response

    async def _get_json(self, path: str, params: Optional[Dict] = None, timeout: float = UPSTREAM_TIMEOUT) -> Dict:
        """
        GET a Polygon endpoint and return the decoded body.

        Raises:
            UpstreamError: On transport failure, error status, or a body
                without status "OK" and results
        """
        response = await self._request(f"{self.base_url}{path}", params, timeout)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from {path}", UpstreamErrorCode.MALFORMED) from e

        if not isinstance(data, dict) or data.get("status") not in ("OK", "DELAYED") or not data.get("results"):
            raise UpstreamError(f"No results from {path}", UpstreamErrorCode.MALFORMED)
        return data

    async def _get_first(self, path: str, params: Dict) -> Dict:
        data = await self._get_json(path, params)
        results = data["results"]
        if not isinstance(results, list):
            raise UpstreamError(f"Unexpected results shape from {path}", UpstreamErrorCode.MALFORMED)
        return results[0]

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    async def _get_ticker_details(self, symbol: str, timeout: float) -> Dict:
        data = await self._get_json(f"/v3/reference/tickers/{symbol.upper()}", timeout=timeout)
        result = data["results"]
        if not isinstance(result, dict):
            raise UpstreamError(f"Unexpected ticker details for {symbol}", UpstreamErrorCode.MALFORMED)
        return result

    async def fetch_identity(self, symbol: str) -> Dict:
        """
        Company identity and market snapshot.

        Returns:
            dict: company_name, exchange, sector, industry, description,
                website, currency, employees, market_cap, shares_outstanding
        """
        result = await self._get_ticker_details(symbol, UPSTREAM_TIMEOUT)
        currency = result.get("currency_name")
        return {
            "company_name": result.get("name"),
            "exchange": result.get("primary_exchange"),
            # SIC description is the only classification Polygon exposes
            "sector": result.get("sic_description"),
            "industry": result.get("sic_description"),
            "description": result.get("description"),
            "website": result.get("homepage_url"),
            "currency": currency.upper() if currency else None,
            "employees": result.get("total_employees"),
            "market_cap": result.get("market_cap"),
            "shares_outstanding": result.get("share_class_shares_outstanding")
            or result.get("weighted_shares_outstanding"),
        }

    async def fetch_ratios(self, symbol: str) -> Dict:
        result = await self._get_first(
            "/stocks/financials/v1/ratios",
            {"ticker": symbol.upper(), "limit": 1, "sort": "date.desc"},
        )
        return {
            "current_price": result.get("price"),
            "average_volume": result.get("average_volume"),
            "earnings_per_share": result.get("earnings_per_share"),
            "price_to_earnings": result.get("price_to_earnings"),
            "price_to_book": result.get("price_to_book"),
            "price_to_sales": result.get("price_to_sales"),
            "price_to_cash_flow": result.get("price_to_cash_flow"),
            "price_to_free_cash_flow": result.get("price_to_free_cash_flow"),
            "enterprise_value": result.get("enterprise_value"),
            "ev_to_sales": result.get("ev_to_sales"),
            "ev_to_ebitda": result.get("ev_to_ebitda"),
            "return_on_assets": result.get("return_on_assets"),
            "return_on_equity": result.get("return_on_equity"),
            "current_ratio": result.get("current"),
            "quick_ratio": result.get("quick"),
            "cash_ratio": result.get("cash"),
            "debt_to_equity": result.get("debt_to_equity"),
            "dividend_yield": result.get("dividend_yield"),
            "free_cash_flow": result.get("free_cash_flow"),
        }

    async def fetch_income_statement(self, symbol: str) -> Dict:
        """Trailing-twelve-month income statement."""
        result = await self._get_first(
            "/stocks/financials/v1/income-statements",
            {
                "tickers": symbol.upper(),
                "timeframe": "trailing_twelve_months",
                "limit": 1,
                "sort": "period_end.desc",
            },
        )
        return {
            "revenue": result.get("revenue"),
            "net_income": result.get("net_income_loss_attributable_common_shareholders"),
            "operating_income": result.get("operating_income"),
            "gross_profit": result.get("gross_profit"),
            "ebitda": result.get("ebitda"),
        }

    async def fetch_balance_sheet(self, symbol: str) -> Dict:
        """Most recent quarterly balance sheet."""
        result = await self._get_first(
            "/stocks/financials/v1/balance-sheets",
            {
                "tickers": symbol.upper(),
                "timeframe": "quarterly",
                "limit": 1,
                "sort": "period_end.desc",
            },
        )
        return {
            "total_assets": result.get("total_assets"),
            "current_assets": result.get("total_current_assets"),
            "total_liabilities": result.get("total_liabilities"),
            "current_liabilities": result.get("total_current_liabilities"),
            "total_equity": result.get("total_equity"),
            "cash": result.get("cash_and_equivalents"),
            "long_term_debt": result.get("long_term_debt_and_capital_lease_obligations"),
        }

    async def fetch_cash_flow(self, symbol: str) -> Dict:
        """Trailing-twelve-month cash flow statement."""
        result = await self._get_first(
            "/stocks/financials/v1/cash-flow-statements",
            {
                "tickers": symbol.upper(),
                "timeframe": "trailing_twelve_months",
                "limit": 1,
                "sort": "period_end.desc",
            },
        )
        return {
            "operating_cash_flow": result.get("net_cash_from_operating_activities"),
            "investing_cash_flow": result.get("net_cash_from_investing_activities"),
            "financing_cash_flow": result.get("net_cash_from_financing_activities"),
            "capex": result.get("purchase_of_property_plant_and_equipment"),
        }

    async def fetch_52_week_range(self, symbol: str, today: Optional[date] = None) -> Dict:
        """
        52-week high and low from one year of daily bars.

        Returns:
            dict: week_52_high, week_52_low
        """
        today = today or utcnow().date()
        start = today - timedelta(days=365)
        data = await self._get_json(
            f"/v2/aggs/ticker/{symbol.upper()}/range/1/day/{start.isoformat()}/{today.isoformat()}",
            {"adjusted": "true", "sort": "asc", "limit": 5000},
        )

        bars = [bar for bar in data["results"] if bar.get("h") is not None and bar.get("l") is not None]
        if not bars:
            raise UpstreamError(f"No daily bars for {symbol}", UpstreamErrorCode.MALFORMED)

        return {
            "week_52_high": max(bar["h"] for bar in bars),
            "week_52_low": min(bar["l"] for bar in bars),
        }

    # ------------------------------------------------------------------
    # Earnings calendar
    # ------------------------------------------------------------------

    async def fetch_calendar_events(self, query: EventQuery) -> List[CalendarEvent]:
        """
        Earnings events from the Benzinga feed.

        An empty calendar is a valid answer and returns [].
        """
        params = {"sort": "date.asc", "limit": EARNINGS_UPSTREAM_LIMIT}
        if query.date_from:
            params["date.gte"] = query.date_from.isoformat()
        if query.date_to:
            params["date.lte"] = query.date_to.isoformat()
        if query.tickers:
            params["ticker.any_of"] = ",".join(query.tickers)
        if query.min_importance is not None:
            params["importance.gte"] = query.min_importance

        try:
            data = await self._get_json("/benzinga/v1/earnings", params, timeout=EARNINGS_TIMEOUT)
        except UpstreamError as e:
            if e.is_absent:
                return []
            raise

        events = []
        for result in data["results"]:
            event = self._to_calendar_event(result)
            if event is not None:
                events.append(event)

        logger.info(f"Fetched {len(events)} earnings events from Polygon")
        return events

    @staticmethod
    def _to_calendar_event(result: Dict) -> Optional[CalendarEvent]:
        ticker = result.get("ticker")
        if not ticker or not result.get("date"):
            return None

        event_id = result.get("benzinga_id") or f"{ticker}-{result.get('fiscal_period')}-{result.get('fiscal_year')}"
        try:
            return CalendarEvent(
                id=str(event_id),
                ticker=ticker.upper(),
                date=result["date"],
                time=result.get("time"),
                date_status=result.get("date_status"),
                importance=result.get("importance"),
                company_name=result.get("company_name") or ticker.upper(),
                eps_actual=result.get("actual_eps"),
                eps_estimate=result.get("estimated_eps"),
                eps_prior=result.get("previous_eps"),
                eps_surprise=result.get("eps_surprise"),
                eps_surprise_percent=result.get("eps_surprise_percent"),
                revenue_actual=result.get("actual_revenue"),
                revenue_estimate=result.get("estimated_revenue"),
                revenue_prior=result.get("previous_revenue"),
                revenue_surprise=result.get("revenue_surprise"),
                revenue_surprise_percent=result.get("revenue_surprise_percent"),
                currency=result.get("currency"),
                period=result.get("fiscal_period"),
                period_year=result.get("fiscal_year"),
            )
        except ValueError as e:
            logger.warning(f"Skipping malformed earnings row {event_id}: {e}")
            return None

    # ------------------------------------------------------------------
    # Branding
    # ------------------------------------------------------------------

    async def fetch_branding(self, symbol: str) -> Dict:
        """
        Logo URLs plus the name and exchange shown beside them.

        Returns:
            dict: icon_url, logo_url, company_name, exchange

        Raises:
            UpstreamError: NOT_FOUND when the ticker has no branding assets
        """
        result = await self._get_ticker_details(symbol, BRANDING_TIMEOUT)
        branding = result.get("branding") or {}
        icon_url = branding.get("icon_url")
        logo_url = branding.get("logo_url")
        if not icon_url and not logo_url:
            raise UpstreamError(f"No branding for {symbol}", UpstreamErrorCode.NOT_FOUND)

        return {
            "icon_url": icon_url or logo_url,
            "logo_url": logo_url,
            "company_name": result.get("name"),
            "exchange": result.get("primary_exchange") or result.get("market"),
        }

    async def fetch_image(self, url: str) -> Tuple[bytes, str]:
        """
        Download a branding image (Polygon image URLs need the API key).

        Returns:
            tuple: (image bytes, content type)
        """
        response = await self._request(url, None, BRANDING_TIMEOUT)
        content_type = response.headers.get("content-type", "image/png")
        return response.content, content_type

    # ------------------------------------------------------------------
    # News
    # ------------------------------------------------------------------

    async def fetch_news(
        self,
        ticker: Optional[str] = None,
        limit: int = 50,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[NewsArticle]:
        """
        Latest news articles, newest first.

        Args:
            ticker: Restrict to one ticker (None for market-wide news)
            limit: Maximum number of articles (capped at NEWS_MAX_LIMIT)
            date_from: Earliest publish date
            date_to: Latest publish date
        """
        params = {
            "limit": min(limit, NEWS_MAX_LIMIT),
            "order": "desc",
            "sort": "published_utc",
        }
        if ticker:
            params["ticker"] = ticker.upper()
        if date_from:
            params["published_utc.gte"] = date_from.isoformat()
        if date_to:
            params["published_utc.lte"] = date_to.isoformat()

        try:
            data = await self._get_json("/v2/reference/news", params)
        except UpstreamError as e:
            if e.is_absent:
                return []
            raise

        articles = []
        for result in data["results"]:
            article = self._to_news_article(result, ticker)
            if article is not None:
                articles.append(article)
        return articles

    @staticmethod
    def _to_news_article(result: Dict, ticker: Optional[str]) -> Optional[NewsArticle]:
        tickers = result.get("tickers") or []
        publisher = result.get("publisher") or {}

        sentiment = None
        insights = result.get("insights") or []
        if insights:
            sentiment = insights[0].get("sentiment")

        try:
            return NewsArticle(
                id=result["id"],
                ticker=ticker.upper() if ticker else (tickers[0] if tickers else None),
                title=result["title"],
                author=result.get("author"),
                published_utc=result["published_utc"],
                article_url=result["article_url"],
                image_url=result.get("image_url"),
                description=result.get("description"),
                publisher_name=publisher.get("name") or "Unknown",
                publisher_url=publisher.get("homepage_url"),
                publisher_logo=publisher.get("logo_url") or publisher.get("favicon_url"),
                tickers=tickers,
                keywords=result.get("keywords") or [],
                sentiment=sentiment,
                sentiment_score=SENTIMENT_SCORES.get(sentiment),
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping malformed news article: {e}")
            return None
