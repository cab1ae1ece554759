from datetime import date, datetime, timezone

import httpx
import pytest

from app.errors import UpstreamError, UpstreamErrorCode
from app.schemas.calendar import EventQuery
from app.services.upstream_client import PolygonClient
from conftest import run

TICKER_DETAILS = {
    "status": "OK",
    "results": {
        "ticker": "AAPL",
        "name": "Apple Inc.",
        "primary_exchange": "XNAS",
        "sic_description": "ELECTRONIC COMPUTERS",
        "description": "Designs phones.",
        "homepage_url": "https://www.apple.com",
        "currency_name": "usd",
        "total_employees": 161000,
        "market_cap": 3.0e12,
        "weighted_shares_outstanding": 15.2e9,
        "branding": {"logo_url": "https://api.polygon.io/logo.svg"},
    },
}


def make_client(handler):
    requests = []

    def recording(request):
        requests.append(request)
        return handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return PolygonClient(http, api_key="secret", base_url="https://polygon.test/"), requests


def call(client, method, *args):
    async def scenario():
        try:
            return await getattr(client, method)(*args)
        finally:
            await client.http.aclose()

    return run(scenario())


def test_identity_mapping_and_api_key():
    client, requests = make_client(lambda request: httpx.Response(200, json=TICKER_DETAILS))

    identity = call(client, "fetch_identity", "aapl")

    assert identity["company_name"] == "Apple Inc."
    assert identity["sector"] == identity["industry"] == "ELECTRONIC COMPUTERS"
    assert identity["currency"] == "USD"
    assert identity["shares_outstanding"] == 15.2e9
    assert requests[0].url.path == "/v3/reference/tickers/AAPL"
    assert requests[0].url.params["apiKey"] == "secret"


@pytest.mark.parametrize(
    "status_code, code, retryable",
    [
        (404, UpstreamErrorCode.NOT_FOUND, False),
        (429, UpstreamErrorCode.RATE_LIMITED, True),
        (403, UpstreamErrorCode.AUTH_FAILED, False),
        (502, UpstreamErrorCode.PROVIDER_ERROR, True),
        (400, UpstreamErrorCode.PROVIDER_ERROR, False),
    ],
)
def test_http_status_classification(status_code, code, retryable):
    client, _ = make_client(lambda request: httpx.Response(status_code, json={}))

    with pytest.raises(UpstreamError) as excinfo:
        call(client, "fetch_ratios", "AAPL")

    assert excinfo.value.code == code
    assert excinfo.value.retryable is retryable


def test_timeout_is_retryable():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client, _ = make_client(handler)

    with pytest.raises(UpstreamError) as excinfo:
        call(client, "fetch_identity", "AAPL")

    assert excinfo.value.code == UpstreamErrorCode.TIMEOUT
    assert excinfo.value.retryable


def test_empty_results_are_malformed():
    client, _ = make_client(lambda request: httpx.Response(200, json={"status": "OK", "results": []}))

    with pytest.raises(UpstreamError) as excinfo:
        call(client, "fetch_income_statement", "AAPL")

    assert excinfo.value.code == UpstreamErrorCode.MALFORMED
    assert excinfo.value.is_absent


def test_statement_mappings():
    payloads = {
        "/stocks/financials/v1/income-statements": {
            "revenue": 400.0,
            "net_income_loss_attributable_common_shareholders": 100.0,
            "operating_income": 120.0,
        },
        "/stocks/financials/v1/cash-flow-statements": {
            "net_cash_from_operating_activities": 110.0,
            "purchase_of_property_plant_and_equipment": -10.0,
        },
    }

    def handler(request):
        return httpx.Response(200, json={"status": "OK", "results": [payloads[request.url.path]]})

    client, requests = make_client(handler)

    async def scenario():
        try:
            return await client.fetch_income_statement("AAPL"), await client.fetch_cash_flow("AAPL")
        finally:
            await client.http.aclose()

    income, cash_flow = run(scenario())

    assert income["net_income"] == 100.0
    assert income["gross_profit"] is None
    assert cash_flow["operating_cash_flow"] == 110.0
    assert cash_flow["capex"] == -10.0
    assert requests[0].url.params["timeframe"] == "trailing_twelve_months"


def test_52_week_range():
    bars = [{"h": 10.0, "l": 8.0}, {"h": 12.5, "l": 9.0}, {"h": 11.0, "l": 7.5}]
    client, requests = make_client(lambda request: httpx.Response(200, json={"status": "OK", "results": bars}))

    result = call(client, "fetch_52_week_range", "AAPL", date(2024, 6, 12))

    assert result == {"week_52_high": 12.5, "week_52_low": 7.5}
    assert requests[0].url.path == "/v2/aggs/ticker/AAPL/range/1/day/2023-06-13/2024-06-12"


def test_calendar_events_mapping_and_params():
    rows = [
        {
            "benzinga_id": "abc123",
            "ticker": "aapl",
            "date": "2024-08-01",
            "time": "16:30:00",
            "date_status": "confirmed",
            "importance": 5,
            "company_name": "Apple Inc.",
            "estimated_eps": 1.35,
            "previous_eps": 1.26,
            "previous_revenue": 81.8e9,
            "fiscal_period": "Q3",
            "fiscal_year": 2024,
        },
        {"ticker": "MSFT", "date": "2024-07-30", "fiscal_period": "Q4", "fiscal_year": 2024},
        {"ticker": "BAD"},
    ]
    client, requests = make_client(lambda request: httpx.Response(200, json={"status": "OK", "results": rows}))
    query = EventQuery.from_params("2024-07-29", "2024-08-02", "msft,aapl", 2)

    events = call(client, "fetch_calendar_events", query)

    assert [e.id for e in events] == ["abc123", "MSFT-Q4-2024"]
    assert events[0].ticker == "AAPL"
    assert events[0].eps_prior == 1.26
    assert events[0].revenue_prior == 81.8e9
    assert events[1].company_name == "MSFT"
    params = requests[0].url.params
    assert params["date.gte"] == "2024-07-29"
    assert params["ticker.any_of"] == "AAPL,MSFT"
    assert params["importance.gte"] == "2"


def test_empty_calendar_is_not_an_error():
    client, _ = make_client(lambda request: httpx.Response(200, json={"status": "OK", "results": []}))

    assert call(client, "fetch_calendar_events", EventQuery()) == []


def test_branding_falls_back_to_logo_and_requires_an_image():
    client, _ = make_client(lambda request: httpx.Response(200, json=TICKER_DETAILS))
    branding = call(client, "fetch_branding", "AAPL")

    assert branding["icon_url"] == branding["logo_url"] == "https://api.polygon.io/logo.svg"
    assert branding["exchange"] == "XNAS"

    bare = {"status": "OK", "results": {"ticker": "ZZZZ", "name": "Nothing"}}
    client, _ = make_client(lambda request: httpx.Response(200, json=bare))
    with pytest.raises(UpstreamError) as excinfo:
        call(client, "fetch_branding", "ZZZZ")
    assert excinfo.value.code == UpstreamErrorCode.NOT_FOUND


def test_fetch_image_adds_api_key():
    client, requests = make_client(
        lambda request: httpx.Response(200, content=b"<svg/>", headers={"content-type": "image/svg+xml"})
    )

    content, content_type = call(client, "fetch_image", "https://api.polygon.io/logo.svg")

    assert content == b"<svg/>"
    assert content_type == "image/svg+xml"
    assert requests[0].url.params["apiKey"] == "secret"


def test_news_mapping():
    rows = [
        {
            "id": "n1",
            "title": "Apple beats",
            "published_utc": "2024-06-10T12:00:00Z",
            "article_url": "https://news.example/n1",
            "tickers": ["AAPL", "MSFT"],
            "publisher": {"name": "Wire", "favicon_url": "https://wire/favicon.ico"},
            "insights": [{"ticker": "AAPL", "sentiment": "negative"}],
        },
        {
            "id": "n2",
            "title": "Market wrap",
            "published_utc": "2024-06-10T11:00:00Z",
            "article_url": "https://news.example/n2",
        },
        {"id": "n3"},
    ]
    client, requests = make_client(lambda request: httpx.Response(200, json={"status": "OK", "results": rows}))

    articles = call(client, "fetch_news", None, 5000)

    assert [a.id for a in articles] == ["n1", "n2"]
    first, second = articles
    assert first.ticker == "AAPL"
    assert first.published_utc == datetime(2024, 6, 10, 12, tzinfo=timezone.utc)
    assert first.publisher_logo == "https://wire/favicon.ico"
    assert first.sentiment_score == -0.7
    assert second.publisher_name == "Unknown"
    assert second.sentiment_score is None
    assert requests[0].url.params["limit"] == "1000"
    assert "ticker" not in requests[0].url.params
