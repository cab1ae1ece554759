"""
Fundamental Model

One row per ticker: company identity, market snapshot, ratios and
statement figures. System of record for the reference data cache.
"""

from datetime import datetime
from sqlalchemy import Column, String, Float, Integer, Text, DateTime

from app.database import Base


class Fundamental(Base):
    """Company reference data keyed by ticker symbol."""

    __tablename__ = "fundamentals"

    ticker = Column(String(10), primary_key=True)  # e.g., "AAPL" (stored uppercase)

    # Company identity
    company_name = Column(String(255), nullable=False)
    exchange = Column(String(20), nullable=True)
    sector = Column(String(255), nullable=True)
    industry = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    website = Column(String(255), nullable=True)
    currency = Column(String(5), nullable=True)
    employees = Column(Integer, nullable=True)

    # Market snapshot
    market_cap = Column(Float, nullable=True)
    shares_outstanding = Column(Float, nullable=True)
    current_price = Column(Float, nullable=True)
    week_52_high = Column(Float, nullable=True)
    week_52_low = Column(Float, nullable=True)
    average_volume = Column(Float, nullable=True)

    # Valuation ratios
    price_to_earnings = Column(Float, nullable=True)
    price_to_book = Column(Float, nullable=True)
    price_to_sales = Column(Float, nullable=True)
    price_to_cash_flow = Column(Float, nullable=True)
    price_to_free_cash_flow = Column(Float, nullable=True)
    enterprise_value = Column(Float, nullable=True)
    ev_to_sales = Column(Float, nullable=True)
    ev_to_ebitda = Column(Float, nullable=True)
    earnings_per_share = Column(Float, nullable=True)

    # Profitability ratios
    return_on_assets = Column(Float, nullable=True)
    return_on_equity = Column(Float, nullable=True)
    profit_margin = Column(Float, nullable=True)
    operating_margin = Column(Float, nullable=True)
    gross_margin = Column(Float, nullable=True)

    # Liquidity, leverage and dividend
    current_ratio = Column(Float, nullable=True)
    quick_ratio = Column(Float, nullable=True)
    cash_ratio = Column(Float, nullable=True)
    debt_to_equity = Column(Float, nullable=True)
    dividend_yield = Column(Float, nullable=True)

    # Income statement (trailing twelve months)
    revenue = Column(Float, nullable=True)
    net_income = Column(Float, nullable=True)
    operating_income = Column(Float, nullable=True)
    gross_profit = Column(Float, nullable=True)
    ebitda = Column(Float, nullable=True)

    # Balance sheet (latest quarter)
    total_assets = Column(Float, nullable=True)
    current_assets = Column(Float, nullable=True)
    total_liabilities = Column(Float, nullable=True)
    current_liabilities = Column(Float, nullable=True)
    total_equity = Column(Float, nullable=True)
    cash = Column(Float, nullable=True)
    long_term_debt = Column(Float, nullable=True)

    # Cash flow (trailing twelve months)
    operating_cash_flow = Column(Float, nullable=True)
    investing_cash_flow = Column(Float, nullable=True)
    financing_cash_flow = Column(Float, nullable=True)
    capex = Column(Float, nullable=True)
    free_cash_flow = Column(Float, nullable=True)

    # Refresh metadata
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    market_cap_updated_at = Column(DateTime, nullable=True)  # Market cap refreshes on its own cycle
    week_52_updated_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return (
            f"<Fundamental(ticker={self.ticker}, name={self.company_name}, "
            f"market_cap={self.market_cap}, updated={self.updated_at})>"
        )
