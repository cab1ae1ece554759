"""
News Schemas
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class NewsArticle(BaseModel):
    id: str
    ticker: Optional[str] = None
    title: str
    author: Optional[str] = None
    published_utc: datetime
    article_url: str
    image_url: Optional[str] = None
    description: Optional[str] = None
    publisher_name: str
    publisher_url: Optional[str] = None
    publisher_logo: Optional[str] = None
    tickers: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    sentiment: Optional[str] = None
    sentiment_score: Optional[float] = None


@dataclass(frozen=True)
class NewsQuery:
    ticker: Optional[str] = None
    limit: int = 50
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def cache_key(self) -> str:
        date_from = self.date_from.isoformat() if self.date_from else ""
        date_to = self.date_to.isoformat() if self.date_to else ""
        return f"news:{self.ticker or 'all'}:{date_from}:{date_to}:{self.limit}"
