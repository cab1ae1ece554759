from datetime import date, datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.dependencies import (
    get_branding_service,
    get_calendar_service,
    get_news_service,
    get_reference_service,
    get_services,
)
from app.errors import UpstreamError, UpstreamErrorCode
from app.main import create_app
from app.schemas.branding import BrandingRecord
from app.schemas.news import NewsArticle
from app.schemas.reference import MarketCapRecord, ReferenceRecord
from app.utils.background import BackgroundWriter
from conftest import make_event


class StubReference:
    def __init__(self):
        self.records = {"AAPL": ReferenceRecord(ticker="AAPL", company_name="Apple Inc.", sector="Tech")}
        self.market_caps = {"AAPL": MarketCapRecord(ticker="AAPL", market_cap=3.0e12)}
        self.invalidated = []

    async def get_reference(self, symbol):
        if symbol.upper() == "BOOM":
            raise RuntimeError("password=hunter2 leaked from the driver")
        return self.records.get(symbol.upper())

    async def get_reference_many(self, symbols):
        return {s: self.records[s] for s in symbols if s in self.records}

    async def get_market_caps(self, symbols):
        return {s: self.market_caps[s] for s in symbols if s in self.market_caps}

    async def invalidate(self, symbol):
        self.invalidated.append(symbol)
        return True


class StubCalendar:
    def __init__(self):
        self.queries = []
        self.events = [make_event("AAPL", date(2024, 8, 1), "amc")]

    async def get_events(self, query, today=None):
        self.queries.append(query)
        return self.events

    async def get_primary_events(self, query, today=None):
        self.queries.append(query)
        return self.events

    async def get_secondary_events(self, query, today=None):
        self.queries.append(query)
        return []

    async def invalidate(self, ticker=None):
        return {"cache_keys_deleted": 2, "rows_deleted": 1 if ticker else 0}


class StubBranding:
    def __init__(self):
        self.record = BrandingRecord(
            ticker="AAPL",
            icon_url="https://api.polygon.io/icon.png",
            logo_url=None,
            company_name="Apple Inc.",
            exchange="XNAS",
            updated_at=datetime(2024, 6, 1, 12),
        )

    async def get_branding(self, symbol):
        return self.record if symbol.upper() == "AAPL" else None

    async def get_branding_many(self, symbols):
        return [self.record for s in symbols if s == "AAPL"]

    async def refresh_branding(self, symbol):
        return await self.get_branding(symbol)

    async def fetch_image(self, symbol, kind="icon"):
        if symbol.upper() == "DOWN":
            raise UpstreamError("gateway", UpstreamErrorCode.PROVIDER_ERROR)
        if symbol.upper() == "AAPL" and kind == "icon":
            return b"\x89PNG", "image/png"
        return None

    async def invalidate(self, symbol):
        return False


class StubNews:
    def __init__(self):
        self.queries = []

    async def get_news(self, query):
        self.queries.append(query)
        return [
            NewsArticle(
                id="n1",
                ticker=query.ticker,
                title="Headline",
                published_utc=datetime(2024, 6, 10, 12),
                article_url="https://news.example/n1",
                publisher_name="Wire",
            )
        ]

    async def clear_cache(self, ticker=None):
        return 3 if ticker is None else 1


class StubCache:
    async def ping(self):
        return True


class StubSession:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, statement):
        raise RuntimeError("database down")


@pytest.fixture
def stubs():
    return SimpleNamespace(
        reference=StubReference(),
        calendar=StubCalendar(),
        branding=StubBranding(),
        news=StubNews(),
        cache=StubCache(),
        session_factory=StubSession,
        writer=BackgroundWriter(),
    )


@pytest.fixture
def client(stubs):
    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_services] = lambda: stubs
    app.dependency_overrides[get_reference_service] = lambda: stubs.reference
    app.dependency_overrides[get_calendar_service] = lambda: stubs.calendar
    app.dependency_overrides[get_branding_service] = lambda: stubs.branding
    app.dependency_overrides[get_news_service] = lambda: stubs.news
    return TestClient(app)


def test_index_and_health(client):
    assert client.get("/").json()["name"] == "Earnings DB API"
    assert client.get("/health").json()["status"] == "ok"


def test_detailed_health_reports_degraded_database(client):
    body = client.get("/health/detailed").json()

    assert body["status"] == "degraded"
    assert body["services"] == {"redis": "up", "database": "down"}
    assert body["background_writes"]["failed"] == 0


def test_fundamentals_single_and_batch(client):
    single = client.get("/api/fundamentals", params={"ticker": "aapl"})
    batch = client.get("/api/fundamentals", params={"tickers": "AAPL,ZZZZ"})
    empty = client.get("/api/fundamentals", params={"tickers": ""})

    assert single.json()["fundamentals"]["sector"] == "Tech"
    assert [r["ticker"] for r in batch.json()["fundamentals"]] == ["AAPL"]
    assert empty.json() == {"fundamentals": []}


def test_fundamentals_errors(client):
    missing_param = client.get("/api/fundamentals")
    unknown = client.get("/api/fundamentals", params={"ticker": "zzzz"})
    broken = client.get("/api/fundamentals", params={"ticker": "BOOM"})

    assert missing_param.status_code == 400
    assert missing_param.json()["code"] == "BAD_REQUEST"
    assert unknown.status_code == 404
    assert unknown.json() == {"error": "No fundamentals found for ZZZZ", "code": "NOT_FOUND"}
    assert broken.status_code == 500
    assert broken.json()["error"] == "Internal server error"
    assert "hunter2" not in broken.text


def test_fundamentals_invalidate(client, stubs):
    response = client.delete("/api/fundamentals/cache/aapl")

    assert response.status_code == 200
    assert stubs.reference.invalidated == ["aapl"]


def test_market_cap_debug(client):
    response = client.get("/api/market-cap", params={"tickers": "aapl,msft", "debug": "true"})

    body = response.json()
    assert [r["ticker"] for r in body["marketCaps"]] == ["AAPL"]
    assert body["debug"] == {"requested": 2, "found": 1, "missing": ["MSFT"]}
    assert client.get("/api/market-cap").status_code == 400


def test_earnings_query_parsing(client, stubs):
    response = client.get(
        "/api/earnings/primary",
        params={"dateFrom": "2024-08-01", "dateTo": "2024-08-02", "tickers": "msft,aapl", "importance": 3},
    )

    assert response.status_code == 200
    assert response.json()[0]["ticker"] == "AAPL"
    query = stubs.calendar.queries[0]
    assert query.tickers == ("AAPL", "MSFT")
    assert query.min_importance == 3
    assert client.get("/api/earnings/secondary").json() == []


def test_earnings_invalid_date(client):
    response = client.get("/api/earnings", params={"dateFrom": "08/01/2024"})

    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"


def test_earnings_invalidate(client):
    body = client.delete("/api/earnings/cache", params={"ticker": "AAPL"}).json()

    assert body["cache_keys_deleted"] == 2
    assert body["rows_deleted"] == 1


def test_logos(client):
    assert client.get("/api/logos/aapl").json()["icon_url"] == "https://api.polygon.io/icon.png"
    assert client.get("/api/logos/zzzz").status_code == 404
    assert [r["ticker"] for r in client.get("/api/logos", params={"tickers": "AAPL,ZZZZ"}).json()["logos"]] == ["AAPL"]
    assert client.post("/api/logos/aapl/refresh").status_code == 200


def test_logo_image_proxy(client):
    image = client.get("/api/logos/AAPL/image")
    missing = client.get("/api/logos/AAPL/image", params={"type": "logo"})
    upstream_down = client.get("/api/logos/DOWN/image")

    assert image.status_code == 200
    assert image.content == b"\x89PNG"
    assert image.headers["content-type"] == "image/png"
    assert image.headers["cache-control"] == "public, max-age=2592000"
    assert missing.status_code == 404
    assert upstream_down.status_code == 502
    assert upstream_down.json()["code"] == "UPSTREAM_ERROR"


def test_logo_and_market_cap(client):
    body = client.get("/api/logo-and-market-cap", params={"tickers": "AAPL,MSFT"}).json()

    assert body["marketCaps"] == {"AAPL": 3.0e12}
    logo = body["logos"][0]
    assert logo["files"]["mark_light"] == "http://testserver/api/logos/AAPL/image?type=icon"
    assert logo["files"]["logo_light"] is None
    assert logo["updated"] == "2024-06-01T12:00:00Z"


def test_news_routes(client, stubs):
    general = client.get("/api/news", params={"limit": 5000}).json()
    ticker = client.get("/api/news/aapl").json()

    assert general["count"] == 1
    assert stubs.news.queries[0].limit == 1000
    assert ticker["ticker"] == "AAPL"
    assert ticker["results"][0]["ticker"] == "AAPL"
    assert client.delete("/api/news/cache").json()["keys_deleted"] == 3
    assert client.delete("/api/news/cache/AAPL").json()["keys_deleted"] == 1
