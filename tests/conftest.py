import asyncio
import fnmatch
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date
from types import SimpleNamespace

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import create_session_factory, init_models
from app.errors import UpstreamError, UpstreamErrorCode
from app.schemas.calendar import CalendarEvent
from app.services.branding_service import BrandingService
from app.services.calendar_service import CalendarService
from app.services.news_service import NewsService
from app.services.reference_service import ReferenceService
from app.stores.durable_store import EarningStore, FundamentalStore, LogoStore, NewsStore
from app.stores.fast_cache import FastCache
from app.utils.background import BackgroundWriter


def run(coro):
    return asyncio.run(coro)


class FakeRedis:
    """In-process stand-in for redis.asyncio.Redis (decode_responses=True)."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("redis down")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def mget(self, keys):
        self._check()
        return [self.data.get(key) for key in keys]

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self._check()
        deleted = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.ttls.pop(key, None)
                deleted += 1
        return deleted

    async def scan_iter(self, match="*", count=None):
        self._check()
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self):
        self._check()
        return True


def not_found(what):
    return UpstreamError(f"{what} not found", UpstreamErrorCode.NOT_FOUND)


def complete_upstream_data():
    """Per-category payloads that make a complete record."""
    return {
        "identity": {
            "company_name": "Apple Inc.",
            "exchange": "XNAS",
            "sector": "ELECTRONIC COMPUTERS",
            "industry": "ELECTRONIC COMPUTERS",
            "description": "Designs phones.",
            "website": "https://www.apple.com",
            "currency": "USD",
            "employees": 161000,
            "market_cap": 3.0e12,
            "shares_outstanding": 15.2e9,
        },
        "ratios": {
            "current_price": 190.0,
            "average_volume": 5.5e7,
            "earnings_per_share": 6.1,
            "price_to_earnings": 31.0,
            "price_to_book": 48.0,
            "price_to_sales": 7.8,
            "price_to_cash_flow": 26.0,
            "price_to_free_cash_flow": 29.0,
            "enterprise_value": 3.05e12,
            "ev_to_sales": 7.9,
            "ev_to_ebitda": 23.0,
            "return_on_assets": 0.28,
            "return_on_equity": 1.5,
            "current_ratio": 0.99,
            "quick_ratio": 0.94,
            "cash_ratio": 0.2,
            "debt_to_equity": 1.8,
            "dividend_yield": 0.005,
            "free_cash_flow": 1.0e11,
        },
        "income": {
            "revenue": 400.0,
            "net_income": 100.0,
            "operating_income": 120.0,
            "gross_profit": 180.0,
            "ebitda": 130.0,
        },
        "balance": {
            "total_assets": 350.0,
            "current_assets": 140.0,
            "total_liabilities": 290.0,
            "current_liabilities": 145.0,
            "total_equity": 60.0,
            "cash": 30.0,
            "long_term_debt": 95.0,
        },
        "cash_flow": {
            "operating_cash_flow": 110.0,
            "investing_cash_flow": -5.0,
            "financing_cash_flow": -100.0,
            "capex": -10.0,
        },
        "week_52": {"week_52_high": 199.0, "week_52_low": 164.0},
    }


class FakeUpstream:
    """
    Scriptable stand-in for PolygonClient.

    Each category maps symbol -> payload dict or exception. Unknown
    symbols raise NOT_FOUND. Every call is recorded in `calls`.
    """

    CATEGORIES = ("identity", "ratios", "income", "balance", "cash_flow", "week_52")

    def __init__(self):
        self.data = {category: {} for category in self.CATEGORIES}
        self.branding = {}
        self.events = []
        self.events_error = None
        self.news = []
        self.images = {}
        self.calls = defaultdict(list)

    def add_symbol(self, symbol, **overrides):
        """Register a symbol with complete data; overrides replace whole categories."""
        payloads = complete_upstream_data()
        payloads.update(overrides)
        for category, payload in payloads.items():
            self.data[category][symbol] = payload

    def _answer(self, category, symbol):
        self.calls[category].append(symbol)
        value = self.data[category].get(symbol)
        if value is None:
            raise not_found(f"{category} for {symbol}")
        if isinstance(value, Exception):
            raise value
        return dict(value)

    async def fetch_identity(self, symbol):
        return self._answer("identity", symbol)

    async def fetch_ratios(self, symbol):
        return self._answer("ratios", symbol)

    async def fetch_income_statement(self, symbol):
        return self._answer("income", symbol)

    async def fetch_balance_sheet(self, symbol):
        return self._answer("balance", symbol)

    async def fetch_cash_flow(self, symbol):
        return self._answer("cash_flow", symbol)

    async def fetch_52_week_range(self, symbol):
        return self._answer("week_52", symbol)

    async def fetch_calendar_events(self, query):
        self.calls["events"].append(query)
        if self.events_error is not None:
            raise self.events_error
        events = self.events
        if query.date_from:
            events = [e for e in events if e.date >= query.date_from]
        if query.date_to:
            events = [e for e in events if e.date <= query.date_to]
        if query.tickers:
            events = [e for e in events if e.ticker in query.tickers]
        return list(events)

    async def fetch_branding(self, symbol):
        self.calls["branding"].append(symbol)
        value = self.branding.get(symbol)
        if value is None:
            raise not_found(f"branding for {symbol}")
        if isinstance(value, Exception):
            raise value
        return dict(value)

    async def fetch_image(self, url):
        self.calls["image"].append(url)
        return self.images[url]

    async def fetch_news(self, ticker=None, limit=50, date_from=None, date_to=None):
        self.calls["news"].append(ticker)
        articles = [a for a in self.news if ticker is None or a.ticker == ticker]
        return articles[:limit]


def make_event(ticker, day, time=None, event_id=None, **fields):
    return CalendarEvent(
        id=event_id or f"{ticker}-{day.isoformat()}",
        ticker=ticker,
        date=day,
        time=time,
        importance=fields.pop("importance", 3),
        company_name=fields.pop("company_name", f"{ticker} Corp"),
        **fields,
    )


@asynccontextmanager
async def service_env(upstream=None):
    """
    Services over a fake Redis, a fake upstream and in-memory SQLite.

    Must be entered inside the event loop that runs the test body.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_models(engine)
    session_factory = create_session_factory(engine)

    redis = FakeRedis()
    cache = FastCache(redis)
    upstream = upstream or FakeUpstream()
    writer = BackgroundWriter()

    fundamentals = FundamentalStore(session_factory)
    earnings = EarningStore(session_factory)
    logos = LogoStore(session_factory)
    news = NewsStore(session_factory)

    reference = ReferenceService(cache, fundamentals, upstream, writer)
    env = SimpleNamespace(
        engine=engine,
        session_factory=session_factory,
        redis=redis,
        cache=cache,
        upstream=upstream,
        writer=writer,
        fundamentals=fundamentals,
        earnings=earnings,
        logos=logos,
        news_store=news,
        reference=reference,
        calendar=CalendarService(cache, earnings, upstream, reference, writer),
        branding=BrandingService(cache, logos, upstream, writer),
        news=NewsService(cache, news, upstream, writer),
    )

    try:
        yield env
    finally:
        await writer.drain()
        await engine.dispose()


@pytest.fixture
def make_env():
    return service_env


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def today():
    return date(2024, 6, 12)
