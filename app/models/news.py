"""
News Model

News articles keyed by provider article id.
"""

from datetime import datetime
from sqlalchemy import Column, String, Float, Text, DateTime, JSON, Index

from app.database import Base


class News(Base):
    """News article with publisher and sentiment metadata."""

    __tablename__ = "news"

    id = Column(String(100), primary_key=True)
    ticker = Column(String(10), nullable=True)  # Primary ticker the article was fetched for
    title = Column(Text, nullable=False)
    author = Column(String(255), nullable=True)
    published_utc = Column(DateTime, nullable=False)
    article_url = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)
    description = Column(Text, nullable=True)

    publisher_name = Column(String(255), nullable=False)
    publisher_url = Column(Text, nullable=True)
    publisher_logo = Column(Text, nullable=True)

    tickers = Column(JSON, default=list, nullable=False)
    keywords = Column(JSON, default=list, nullable=False)
    sentiment = Column(String(20), nullable=True)
    sentiment_score = Column(Float, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_ticker_published", "ticker", "published_utc"),
        Index("idx_published", "published_utc"),
    )

    def __repr__(self):
        return f"<News {self.id} {self.ticker}: {self.title[:40]}>"
