from datetime import datetime, timedelta

from app.schemas.reference import ReferenceRecord
from app.services.refresh_policy import (
    CATEGORY_FIELDS,
    categories_to_fetch,
    compute_margins,
    is_complete,
    is_stale,
    merge_patch,
    missing_fields,
    remaining_freshness,
)
from conftest import complete_upstream_data


def full_record(**overrides):
    values = {"ticker": "AAPL"}
    for payload in complete_upstream_data().values():
        values.update(payload)
    values.update(overrides)
    return ReferenceRecord(**values)


def test_merge_patch_never_erases_known_values():
    existing = ReferenceRecord(ticker="AAPL", company_name="Apple", sector="Tech", market_cap=1.0)
    patch = {"sector": None, "market_cap": 2.0, "exchange": "XNAS"}

    merged = merge_patch(existing, patch)

    assert merged.sector == "Tech"
    assert merged.market_cap == 2.0
    assert merged.exchange == "XNAS"
    assert merged.company_name == "Apple"


def test_merge_patch_does_not_modify_inputs():
    existing = ReferenceRecord(ticker="AAPL", company_name="Apple", sector="Tech")
    patch = {"sector": "Hardware"}

    merge_patch(existing, patch)

    assert existing.sector == "Tech"
    assert patch == {"sector": "Hardware"}


def test_merge_patch_from_nothing_needs_model():
    merged = merge_patch(None, {"ticker": "MSFT", "company_name": "Microsoft", "revenue": 10.0}, ReferenceRecord)

    assert merged.ticker == "MSFT"
    assert merged.revenue == 10.0
    assert merged.sector is None


def test_merge_patch_ignores_unknown_keys():
    existing = ReferenceRecord(ticker="AAPL", company_name="Apple")
    merged = merge_patch(existing, {"not_a_field": 1})
    assert not hasattr(merged, "not_a_field")


def test_is_complete():
    assert is_complete(full_record())
    assert not is_complete(None)
    assert not is_complete(full_record(sector=None))
    assert missing_fields(full_record(revenue=None, exchange=None)) == ["exchange", "revenue"]


def test_is_stale():
    now = datetime(2024, 6, 12, 12, 0)
    week = timedelta(days=7)

    assert is_stale(None, week, now)
    assert is_stale(now - timedelta(days=8), week, now)
    assert is_stale(now - week, week, now)
    assert not is_stale(now - timedelta(days=1), week, now)


def test_remaining_freshness():
    now = datetime(2024, 6, 12, 12, 0)
    week = timedelta(days=7)

    assert remaining_freshness(now - timedelta(days=1), week, now) == 6 * 24 * 3600
    assert remaining_freshness(now - timedelta(days=30), week, now) == 1


def test_categories_to_fetch_for_new_or_stale_record():
    assert categories_to_fetch(None, stale=True) == set(CATEGORY_FIELDS)
    assert categories_to_fetch(full_record(), stale=True) == set(CATEGORY_FIELDS)


def test_categories_to_fetch_fills_only_gaps_when_fresh():
    record = full_record(operating_cash_flow=None, week_52_low=None)
    assert categories_to_fetch(record, stale=False) == {"cash_flow", "week_52"}
    assert categories_to_fetch(full_record(), stale=False) == set()


def test_compute_margins():
    margins = compute_margins({"revenue": 400.0, "net_income": 100.0, "operating_income": 120.0, "gross_profit": None})

    assert margins == {"profit_margin": 0.25, "operating_margin": 0.3}
    assert compute_margins({"revenue": None, "net_income": 1.0}) == {}
    assert compute_margins({"revenue": 0, "net_income": 1.0}) == {}
