"""
Reference Data Schemas

Every numeric field is optional: the upstream API does not supply every
figure for every ticker, and a refresh only overwrites what it fetched.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ReferenceRecord(BaseModel):
    ticker: str = Field(..., description="Ticker symbol (uppercase).")
    company_name: str = Field(..., description="Company name; defaults to the ticker.")

    # Company identity
    exchange: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    currency: Optional[str] = None
    employees: Optional[int] = None

    # Market snapshot
    market_cap: Optional[float] = None
    shares_outstanding: Optional[float] = None
    current_price: Optional[float] = None
    week_52_high: Optional[float] = None
    week_52_low: Optional[float] = None
    average_volume: Optional[float] = None

    # Valuation ratios
    price_to_earnings: Optional[float] = None
    price_to_book: Optional[float] = None
    price_to_sales: Optional[float] = None
    price_to_cash_flow: Optional[float] = None
    price_to_free_cash_flow: Optional[float] = None
    enterprise_value: Optional[float] = None
    ev_to_sales: Optional[float] = None
    ev_to_ebitda: Optional[float] = None
    earnings_per_share: Optional[float] = None

    # Profitability ratios
    return_on_assets: Optional[float] = None
    return_on_equity: Optional[float] = None
    profit_margin: Optional[float] = None
    operating_margin: Optional[float] = None
    gross_margin: Optional[float] = None

    # Liquidity, leverage and dividend
    current_ratio: Optional[float] = None
    quick_ratio: Optional[float] = None
    cash_ratio: Optional[float] = None
    debt_to_equity: Optional[float] = None
    dividend_yield: Optional[float] = None

    # Income statement
    revenue: Optional[float] = None
    net_income: Optional[float] = None
    operating_income: Optional[float] = None
    gross_profit: Optional[float] = None
    ebitda: Optional[float] = None

    # Balance sheet
    total_assets: Optional[float] = None
    current_assets: Optional[float] = None
    total_liabilities: Optional[float] = None
    current_liabilities: Optional[float] = None
    total_equity: Optional[float] = None
    cash: Optional[float] = None
    long_term_debt: Optional[float] = None

    # Cash flow
    operating_cash_flow: Optional[float] = None
    investing_cash_flow: Optional[float] = None
    financing_cash_flow: Optional[float] = None
    capex: Optional[float] = None
    free_cash_flow: Optional[float] = None

    updated_at: Optional[datetime] = None
    market_cap_updated_at: Optional[datetime] = None
    week_52_updated_at: Optional[datetime] = None


class MarketCapRecord(BaseModel):
    ticker: str
    market_cap: float
    updated_at: Optional[datetime] = None
