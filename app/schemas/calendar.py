"""
Earnings Calendar Schemas

CalendarEvent is the record served to clients. EventQuery is the typed
query shape: it normalizes parameters once so identical parameter sets
always produce the same cache key.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple

from pydantic import BaseModel, Field


class CalendarEvent(BaseModel):
    id: str = Field(..., description="Provider event id or TICKER-PERIOD-YEAR.")
    ticker: str
    date: date
    time: Optional[str] = Field(None, description="bmo / amc / HH:MM:SS / None.")
    date_status: Optional[str] = None
    importance: Optional[int] = Field(None, ge=0, le=5)
    company_name: str

    eps_actual: Optional[float] = None
    eps_estimate: Optional[float] = None
    eps_prior: Optional[float] = None
    eps_surprise: Optional[float] = None
    eps_surprise_percent: Optional[float] = None

    revenue_actual: Optional[float] = None
    revenue_estimate: Optional[float] = None
    revenue_prior: Optional[float] = None
    revenue_surprise: Optional[float] = None
    revenue_surprise_percent: Optional[float] = None

    currency: Optional[str] = None
    period: Optional[str] = None
    period_year: Optional[int] = None


@dataclass(frozen=True)
class EventQuery:
    """Earnings calendar query: optional date range, ticker set and importance floor."""

    date_from: Optional[date] = None
    date_to: Optional[date] = None
    tickers: Tuple[str, ...] = ()
    min_importance: Optional[int] = None

    @classmethod
    def from_params(
        cls,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        tickers: Optional[str] = None,
        min_importance: Optional[int] = None,
    ) -> "EventQuery":
        """
        Build a query from raw request parameters.

        Args:
            date_from: ISO date "YYYY-MM-DD"
            date_to: ISO date "YYYY-MM-DD"
            tickers: Comma-separated ticker list
            min_importance: Importance floor (0-5)

        Raises:
            ValueError: If a date is not ISO formatted
        """
        ticker_set = set()
        if tickers:
            ticker_set = {t.strip().upper() for t in tickers.split(",") if t.strip()}

        return cls(
            date_from=date.fromisoformat(date_from) if date_from else None,
            date_to=date.fromisoformat(date_to) if date_to else None,
            tickers=tuple(sorted(ticker_set)),
            min_importance=min_importance,
        )

    def is_historical(self, today: date) -> bool:
        """True when the whole range ends before the current day."""
        return self.date_to is not None and self.date_to < today

    def cache_key(self) -> str:
        parts = ["earnings"]
        if self.date_from:
            parts.append(f"from:{self.date_from.isoformat()}")
        if self.date_to:
            parts.append(f"to:{self.date_to.isoformat()}")
        if self.tickers:
            parts.append(f"tickers:{','.join(self.tickers)}")
        if self.min_importance is not None:
            parts.append(f"imp:{self.min_importance}")
        return ":".join(parts)
