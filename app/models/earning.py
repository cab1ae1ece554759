"""
Earning Model

One row per ticker x fiscal-period disclosure from the earnings calendar.
"""

from datetime import datetime
from sqlalchemy import Column, String, Float, Integer, Date, DateTime, Index

from app.database import Base


class Earning(Base):
    """Earnings calendar event."""

    __tablename__ = "earnings"

    id = Column(String(50), primary_key=True)  # Provider id or "TICKER-PERIOD-YEAR"
    ticker = Column(String(10), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(20), nullable=True)  # "bmo", "amc", "16:05:00", ...
    date_status = Column(String(20), nullable=True)  # "confirmed" / "projected"
    importance = Column(Integer, default=0, nullable=False)  # 0-5

    company_name = Column(String(255), nullable=False)
    currency = Column(String(5), nullable=True)
    period = Column(String(10), nullable=True)  # "Q1", "FY"
    period_year = Column(Integer, nullable=True)

    # EPS
    eps_actual = Column(Float, nullable=True)
    eps_estimate = Column(Float, nullable=True)
    eps_prior = Column(Float, nullable=True)
    eps_surprise = Column(Float, nullable=True)
    eps_surprise_percent = Column(Float, nullable=True)

    # Revenue
    revenue_actual = Column(Float, nullable=True)
    revenue_estimate = Column(Float, nullable=True)
    revenue_prior = Column(Float, nullable=True)
    revenue_surprise = Column(Float, nullable=True)
    revenue_surprise_percent = Column(Float, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        # "All AAPL events" / "events for these tickers in a date range"
        Index("idx_ticker_date", "ticker", "date"),

        # "Events on these dates with importance >= N"
        Index("idx_date_importance", "date", "importance"),
    )

    def __repr__(self):
        return f"<Earning {self.id} {self.ticker} @ {self.date} ({self.time})>"
