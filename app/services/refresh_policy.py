"""
Entity Refresh Policy

Rules that decide when a cached reference record is good enough to
serve and how a partial refresh is folded into what is already known:

- merge_patch: overlay a partial patch onto a prior record; a None in
  the patch never erases a known value
- is_complete: the fields a record must carry before it is served from
  cache without a refetch
- is_stale: age check against a per-category threshold
- CATEGORY_FIELDS: which record fields each upstream sub-fetch supplies
"""

from datetime import datetime, timedelta
from typing import Dict, Mapping, Optional, Set, TypeVar

from pydantic import BaseModel

from app.utils.market_hours import utcnow

ModelT = TypeVar("ModelT", bound=BaseModel)


# Upstream sub-fetch categories and the record fields each one supplies
CATEGORY_FIELDS: Dict[str, Set[str]] = {
    "identity": {
        "company_name", "exchange", "sector", "industry", "description",
        "website", "currency", "employees", "market_cap", "shares_outstanding",
    },
    "ratios": {
        "current_price", "average_volume", "earnings_per_share",
        "price_to_earnings", "price_to_book", "price_to_sales",
        "price_to_cash_flow", "price_to_free_cash_flow", "enterprise_value",
        "ev_to_sales", "ev_to_ebitda", "return_on_assets", "return_on_equity",
        "current_ratio", "quick_ratio", "cash_ratio", "debt_to_equity",
        "dividend_yield", "free_cash_flow",
    },
    "income": {"revenue", "net_income", "operating_income", "gross_profit", "ebitda"},
    "balance": {
        "total_assets", "current_assets", "total_liabilities",
        "current_liabilities", "total_equity", "cash", "long_term_debt",
    },
    "cash_flow": {
        "operating_cash_flow", "investing_cash_flow", "financing_cash_flow", "capex",
    },
    "week_52": {"week_52_high", "week_52_low"},
}

# A record missing any of these is refetched even when it is fresh
REQUIRED_FIELDS = (
    "exchange",
    "sector",
    "industry",
    "market_cap",
    "current_price",
    "revenue",
    "operating_cash_flow",
)


def merge_patch(existing: Optional[ModelT], patch: Mapping, model: type = None) -> ModelT:
    """
    Overlay a partial patch onto a record.

    For every field of the record's model: the patch value wins when it is
    not None, otherwise the existing value is kept. Keys in the patch that
    are not model fields are ignored.

    Args:
        existing: Prior record, or None when nothing is known yet
        patch: Partial field values (None allowed)
        model: Record class; required when existing is None

    Returns:
        A new record; neither input is modified
    """
    model = model or type(existing)
    base = existing.model_dump() if existing is not None else {}

    merged = {}
    for field in model.model_fields:
        value = patch.get(field)
        merged[field] = value if value is not None else base.get(field)

    return model.model_validate(merged)


def is_complete(record: Optional[BaseModel]) -> bool:
    """True when every required field is populated."""
    if record is None:
        return False
    return all(getattr(record, field, None) is not None for field in REQUIRED_FIELDS)


def missing_fields(record: BaseModel) -> list:
    return [field for field in REQUIRED_FIELDS if getattr(record, field, None) is None]


def is_stale(
    updated_at: Optional[datetime],
    threshold: timedelta,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check whether a timestamp is older than the threshold.

    A missing timestamp is always stale.
    """
    if updated_at is None:
        return True
    now = now or utcnow()
    return now - updated_at >= threshold


def remaining_freshness(
    updated_at: datetime,
    threshold: timedelta,
    now: Optional[datetime] = None,
) -> int:
    """Seconds until the record crosses its staleness threshold (at least 1)."""
    now = now or utcnow()
    remaining = (updated_at + threshold - now).total_seconds()
    return max(int(remaining), 1)


def category_populated(record: Optional[BaseModel], category: str) -> bool:
    """True when the record has every field the category supplies."""
    if record is None:
        return False
    return all(getattr(record, field, None) is not None for field in CATEGORY_FIELDS[category])


def categories_to_fetch(record: Optional[BaseModel], stale: bool) -> Set[str]:
    """
    Sub-fetch categories for a refresh.

    A stale (or absent) record refreshes every category; a fresh record
    with gaps refreshes only the categories that are not fully populated.
    """
    if record is None or stale:
        return set(CATEGORY_FIELDS)
    return {category for category in CATEGORY_FIELDS if not category_populated(record, category)}


def compute_margins(patch: Mapping) -> Dict[str, Optional[float]]:
    """
    Profit, operating and gross margin (as fractions) from income-statement figures.

    Only call with income data fetched this cycle; margins are never
    derived from a mix of old and new statements.
    """
    revenue = patch.get("revenue")
    if not revenue:
        return {}

    margins = {}
    if patch.get("net_income") is not None:
        margins["profit_margin"] = patch["net_income"] / revenue
    if patch.get("operating_income") is not None:
        margins["operating_margin"] = patch["operating_income"] / revenue
    if patch.get("gross_profit") is not None:
        margins["gross_margin"] = patch["gross_profit"] / revenue
    return margins
