"""
Durable Store

Per-entity persistence over SQLAlchemy async sessions. The database is
the system of record; every method opens its own session so concurrent
background writes never share one. Errors propagate: callers decide
whether a failure degrades to a miss.
"""

from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import EARNINGS_UPSERT_BATCH_SIZE
from app.models.earning import Earning
from app.models.fundamental import Fundamental
from app.models.logo import Logo
from app.models.news import News
from app.schemas.branding import BrandingRecord
from app.schemas.calendar import CalendarEvent, EventQuery
from app.schemas.news import NewsArticle
from app.schemas.reference import MarketCapRecord, ReferenceRecord
from app.utils.logger import create_logger
from app.utils.market_hours import utcnow

logger = create_logger(__name__)


class FundamentalStore:
    """Reference data rows, one per ticker."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def find_by_key(self, symbol: str) -> Optional[ReferenceRecord]:
        async with self.session_factory() as session:
            row = await session.get(Fundamental, symbol.upper())
            if row is None:
                return None
            return ReferenceRecord.model_validate(row, from_attributes=True)

    async def find_many(self, symbols: Iterable[str]) -> Dict[str, ReferenceRecord]:
        symbols = [s.upper() for s in symbols]
        if not symbols:
            return {}

        async with self.session_factory() as session:
            result = await session.execute(
                select(Fundamental).where(Fundamental.ticker.in_(symbols))
            )
            return {
                row.ticker: ReferenceRecord.model_validate(row, from_attributes=True)
                for row in result.scalars()
            }

    async def upsert(self, record: ReferenceRecord) -> None:
        """
        Insert or update a reference row.

        Only fields present on the record are written; a None never
        overwrites a stored value.
        """
        values = record.model_dump(exclude_none=True)
        values.setdefault("updated_at", utcnow())

        async with self.session_factory() as session:
            row = await session.get(Fundamental, record.ticker)
            if row is None:
                row = Fundamental(ticker=record.ticker)
                session.add(row)
            for field, value in values.items():
                setattr(row, field, value)
            await session.commit()

        logger.debug(f"Persisted reference data for {record.ticker}")

    async def upsert_market_cap(
        self,
        symbol: str,
        company_name: str,
        market_cap: float,
        shares_outstanding: Optional[float] = None,
    ) -> None:
        """
        Write market-cap fields without touching the rest of the row.

        A new row gets company name and updated_at as well so it satisfies
        the table constraints; an existing row keeps its own updated_at.
        """
        symbol = symbol.upper()
        now = utcnow()

        async with self.session_factory() as session:
            row = await session.get(Fundamental, symbol)
            if row is None:
                row = Fundamental(ticker=symbol, company_name=company_name, updated_at=now)
                session.add(row)
            row.market_cap = market_cap
            if shares_outstanding is not None:
                row.shares_outstanding = shares_outstanding
            row.market_cap_updated_at = now
            await session.commit()

    async def update_week_52_range(self, symbol: str, high: float, low: float) -> bool:
        """
        Store a fresh 52-week range on an existing row.

        Returns:
            bool: False when the ticker has no row yet
        """
        async with self.session_factory() as session:
            row = await session.get(Fundamental, symbol.upper())
            if row is None:
                return False
            row.week_52_high = high
            row.week_52_low = low
            row.week_52_updated_at = utcnow()
            await session.commit()
            return True

    async def find_market_caps(self, symbols: Iterable[str]) -> Dict[str, MarketCapRecord]:
        """
        Stored market caps for the given tickers.

        Returns:
            dict: ticker -> MarketCapRecord, only for rows with a market cap
        """
        symbols = [s.upper() for s in symbols]
        if not symbols:
            return {}

        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    Fundamental.ticker,
                    Fundamental.market_cap,
                    Fundamental.market_cap_updated_at,
                    Fundamental.updated_at,
                ).where(
                    Fundamental.ticker.in_(symbols),
                    Fundamental.market_cap.is_not(None),
                )
            )
            return {
                ticker: MarketCapRecord(
                    ticker=ticker,
                    market_cap=market_cap,
                    updated_at=market_cap_updated_at or updated_at,
                )
                for ticker, market_cap, market_cap_updated_at, updated_at in result.all()
            }

    async def delete_by_key(self, symbol: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(Fundamental).where(Fundamental.ticker == symbol.upper())
            )
            await session.commit()
            return result.rowcount > 0


class EarningStore:
    """Earnings calendar rows."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        batch_size: int = EARNINGS_UPSERT_BATCH_SIZE,
    ):
        self.session_factory = session_factory
        self.batch_size = batch_size

    async def find_by_key(self, event_id: str) -> Optional[CalendarEvent]:
        async with self.session_factory() as session:
            row = await session.get(Earning, event_id)
            if row is None:
                return None
            return CalendarEvent.model_validate(row, from_attributes=True)

    async def find_by_filter(self, query: EventQuery) -> List[CalendarEvent]:
        """
        Events matching a calendar query, ordered by date then ticker.

        Args:
            query: Date range, ticker set and importance floor (all optional)
        """
        stmt = select(Earning)
        if query.date_from:
            stmt = stmt.where(Earning.date >= query.date_from)
        if query.date_to:
            stmt = stmt.where(Earning.date <= query.date_to)
        if query.tickers:
            stmt = stmt.where(Earning.ticker.in_(query.tickers))
        if query.min_importance is not None:
            stmt = stmt.where(Earning.importance >= query.min_importance)
        stmt = stmt.order_by(Earning.date.asc(), Earning.ticker.asc())

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [
                CalendarEvent.model_validate(row, from_attributes=True)
                for row in result.scalars()
            ]

    async def upsert_events(self, events: List[CalendarEvent]) -> int:
        """
        Upsert events in batches, one transaction per batch.

        Args:
            events: Events to persist

        Returns:
            int: Number of transactions committed
        """
        batches = 0
        now = utcnow()

        for start in range(0, len(events), self.batch_size):
            batch = events[start:start + self.batch_size]
            async with self.session_factory() as session:
                for event in batch:
                    values = event.model_dump()
                    if values["importance"] is None:
                        values["importance"] = 0
                    await session.merge(Earning(**values, updated_at=now))
                await session.commit()
            batches += 1
            logger.debug(f"Upserted earnings batch {batches} ({len(batch)} rows)")

        return batches

    async def insert_new_events(self, events: List[CalendarEvent]) -> int:
        """
        Insert events whose id is not stored yet; stored rows are left untouched.

        Returns:
            int: Number of rows inserted
        """
        inserted = 0
        now = utcnow()

        for start in range(0, len(events), self.batch_size):
            batch = list({event.id: event for event in events[start:start + self.batch_size]}.values())
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Earning.id).where(Earning.id.in_([event.id for event in batch]))
                )
                existing = set(result.scalars())
                for event in batch:
                    if event.id in existing:
                        continue
                    values = event.model_dump()
                    if values["importance"] is None:
                        values["importance"] = 0
                    session.add(Earning(**values, updated_at=now))
                    inserted += 1
                await session.commit()

        logger.debug(f"Inserted {inserted} of {len(events)} earnings")
        return inserted

    async def delete_by_ticker(self, ticker: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(Earning).where(Earning.ticker == ticker.upper())
            )
            await session.commit()
            return result.rowcount


class LogoStore:
    """Branding rows, overwritten wholesale."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def find_by_key(self, symbol: str) -> Optional[BrandingRecord]:
        async with self.session_factory() as session:
            row = await session.get(Logo, symbol.upper())
            if row is None:
                return None
            return BrandingRecord.model_validate(row, from_attributes=True)

    async def upsert(self, record: BrandingRecord) -> None:
        values = record.model_dump(exclude={"updated_at"})
        async with self.session_factory() as session:
            await session.merge(Logo(**values, updated_at=record.updated_at or utcnow()))
            await session.commit()

    async def delete_by_key(self, symbol: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(Logo).where(Logo.ticker == symbol.upper()))
            await session.commit()
            return result.rowcount > 0


class NewsStore:
    """News articles, keyed by provider article id."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def find_recent(
        self,
        ticker: Optional[str] = None,
        limit: int = 50,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[NewsArticle]:
        """Newest articles first, optionally for one ticker and a date range."""
        stmt = select(News)
        if ticker:
            stmt = stmt.where(News.ticker == ticker.upper())
        if date_from:
            stmt = stmt.where(News.published_utc >= datetime.combine(date_from, datetime.min.time()))
        if date_to:
            stmt = stmt.where(News.published_utc <= datetime.combine(date_to, datetime.max.time()))
        stmt = stmt.order_by(News.published_utc.desc()).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [
                NewsArticle.model_validate(row, from_attributes=True)
                for row in result.scalars()
            ]

    async def upsert_articles(self, articles: List[NewsArticle]) -> None:
        now = utcnow()
        async with self.session_factory() as session:
            for article in articles:
                values = article.model_dump()
                # Stored naive UTC like every other timestamp column
                published = values["published_utc"]
                if published.tzinfo is not None:
                    values["published_utc"] = published.astimezone(timezone.utc).replace(tzinfo=None)
                await session.merge(News(**values, updated_at=now))
            await session.commit()

    async def delete_by_key(self, article_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(News).where(News.id == article_id))
            await session.commit()
            return result.rowcount > 0
