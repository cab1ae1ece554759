"""
Calendar Service

Earnings calendar with a cache policy split on the current date:
- Historical ranges (ending before today): Redis (no expiry) -> Database -> Polygon
- Current/future ranges: always Polygon, falling back to the database
  when Polygon is unavailable

Every response keeps only tickers with a known market cap and is sorted
by market cap, largest first. The primary/secondary split picks the top
five before-market and after-market reports for each date.
"""

from collections import OrderedDict
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from app.config import EARNINGS_HISTORICAL_CACHE_TTL, PRIMARY_EVENTS_PER_SESSION
from app.errors import UpstreamError
from app.schemas.calendar import CalendarEvent, EventQuery
from app.services.reference_service import ReferenceService
from app.services.upstream_client import PolygonClient
from app.stores.durable_store import EarningStore
from app.stores.fast_cache import FastCache
from app.utils.background import BackgroundWriter
from app.utils.logger import create_logger
from app.utils.market_hours import get_market_today, get_session

logger = create_logger(__name__)


def split_sessions(
    events: List[CalendarEvent],
    per_session: int = PRIMARY_EVENTS_PER_SESSION,
) -> Tuple[List[CalendarEvent], List[CalendarEvent]]:
    """
    Split events into primary and secondary lists.

    For each date, the first `per_session` before-market events and the
    first `per_session` after-market events (in input order, so callers
    sort by market cap first) are primary. Everything else, including
    intraday and unclassifiable times, is secondary.

    Args:
        events: Events sorted by priority
        per_session: Primary slots per session per date

    Returns:
        tuple: (primary, secondary), each keeping input order within a date
    """
    by_date: Dict[date, Dict[str, List[int]]] = OrderedDict()
    for index, event in enumerate(events):
        session = get_session(event.time)
        if session is None:
            continue
        sessions = by_date.setdefault(event.date, {"before_market": [], "after_market": []})
        if len(sessions[session]) < per_session:
            sessions[session].append(index)

    primary_indexes = []
    for day in sorted(by_date):
        sessions = by_date[day]
        primary_indexes.extend(sessions["before_market"])
        primary_indexes.extend(sessions["after_market"])

    selected = set(primary_indexes)
    primary = [events[i] for i in primary_indexes]
    secondary = [event for i, event in enumerate(events) if i not in selected]
    return primary, secondary


class CalendarService:
    """Service for fetching, caching and ranking earnings events."""

    def __init__(
        self,
        cache: FastCache,
        store: EarningStore,
        upstream: PolygonClient,
        reference: ReferenceService,
        writer: BackgroundWriter,
    ):
        self.cache = cache
        self.store = store
        self.upstream = upstream
        self.reference = reference
        self.writer = writer

    async def get_events(self, query: EventQuery, today: Optional[date] = None) -> List[CalendarEvent]:
        """
        Get earnings events for a query, filtered to tickers with a known
        market cap and sorted by market cap descending.

        Args:
            query: Calendar query
            today: Current market date (defaults to today in US/Eastern)

        Returns:
            list: CalendarEvent list (may be empty)
        """
        today = today or get_market_today()

        if query.is_historical(today):
            events = await self._get_historical(query, today)
        else:
            events = await self._get_upcoming(query, today)

        return await self._filter_by_market_cap(events)

    async def get_primary_events(self, query: EventQuery, today: Optional[date] = None) -> List[CalendarEvent]:
        """
        Top five before-market and after-market events per date.

        Also schedules a background 52-week range refresh for the returned tickers.
        """
        events = await self.get_events(query, today)
        primary, _ = split_sessions(events)
        logger.info(f"Primary earnings: {len(primary)} of {len(events)}")

        tickers = sorted({event.ticker for event in primary})
        if tickers:
            self.writer.submit(
                self.reference.refresh_week_52_range(tickers),
                f"52-week prefetch for {len(tickers)} tickers",
            )
        return primary

    async def get_secondary_events(self, query: EventQuery, today: Optional[date] = None) -> List[CalendarEvent]:
        """Every event not returned by get_primary_events for the same query."""
        events = await self.get_events(query, today)
        _, secondary = split_sessions(events)
        logger.info(f"Secondary earnings: {len(secondary)} of {len(events)}")
        return secondary

    async def _get_historical(self, query: EventQuery, today: date) -> List[CalendarEvent]:
        cache_key = query.cache_key()

        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Redis cache hit for {cache_key} ({len(cached)} events)")
            return [CalendarEvent.model_validate(item) for item in cached]

        # Historical reads from the database are not optional: errors propagate
        events = await self.store.find_by_filter(query)
        if events:
            logger.info(f"DB hit for {cache_key} ({len(events)} events)")
            self._cache_historical(cache_key, events)
            return events

        logger.info(f"Cache miss for {cache_key}, fetching from Polygon")
        try:
            events = await self.upstream.fetch_calendar_events(query)
        except UpstreamError as e:
            logger.warning(f"Polygon earnings fetch failed for {cache_key}: {e} ({e.code.value})")
            return []

        self._persist(events, today)
        if events:
            self._cache_historical(cache_key, events)
        return events

    async def _get_upcoming(self, query: EventQuery, today: date) -> List[CalendarEvent]:
        try:
            events = await self.upstream.fetch_calendar_events(query)
        except UpstreamError as e:
            logger.warning(f"Polygon earnings fetch failed, serving stored events: {e} ({e.code.value})")
            try:
                return await self.store.find_by_filter(query)
            except Exception as db_error:
                logger.error(f"Database read error for upcoming earnings: {db_error}", exc_info=True)
                return []

        logger.info(f"Fetched {len(events)} upcoming earnings from Polygon (not cached)")
        self._persist(events, today)
        return events

    def _cache_historical(self, cache_key: str, events: List[CalendarEvent]) -> None:
        payload = [event.model_dump(mode="json") for event in events]
        self.writer.submit(
            self.cache.set_with_ttl(cache_key, payload, EARNINGS_HISTORICAL_CACHE_TTL),
            f"cache {cache_key}",
        )

    def _persist(self, events: List[CalendarEvent], today: date) -> None:
        # Reported results are final: past rows are only ever inserted
        past = [event for event in events if event.date < today]
        current = [event for event in events if event.date >= today]
        if past:
            self.writer.submit(self.store.insert_new_events(past), f"persist {len(past)} past earnings")
        if current:
            self.writer.submit(self.store.upsert_events(current), f"persist {len(current)} earnings")

    async def _filter_by_market_cap(self, events: List[CalendarEvent]) -> List[CalendarEvent]:
        """
        Keep events whose ticker has a known market cap, largest first.

        Tickers without one are dropped from this response and their market
        caps are fetched in the background for later requests.
        """
        if not events:
            return events

        tickers = list(OrderedDict.fromkeys(event.ticker for event in events))
        market_caps = await self.reference.get_known_market_caps(tickers)

        missing = [ticker for ticker in tickers if ticker not in market_caps]
        if missing:
            logger.info(f"Filtered out {len(missing)} tickers without a known market cap")
            self.writer.submit(
                self.reference.get_market_caps(missing),
                f"market cap fetch for {len(missing)} tickers",
            )

        kept = [event for event in events if event.ticker in market_caps]
        kept.sort(key=lambda event: market_caps[event.ticker], reverse=True)
        logger.info(f"Market cap filter: {len(events)} -> {len(kept)} earnings")
        return kept

    async def invalidate(self, ticker: Optional[str] = None) -> Dict[str, int]:
        """
        Clear cached calendar queries, and a ticker's stored events if given.

        Returns:
            dict: cache_keys_deleted, rows_deleted
        """
        deleted_keys = await self.cache.delete_pattern("earnings:*")
        deleted_rows = 0
        if ticker:
            deleted_rows = await self.store.delete_by_ticker(ticker)
        logger.info(f"Invalidated earnings cache ({deleted_keys} keys, {deleted_rows} rows)")
        return {"cache_keys_deleted": deleted_keys, "rows_deleted": deleted_rows}

    async def prefetch_upcoming(self, days: int = 7, today: Optional[date] = None) -> int:
        """
        Warm the database and market caps for the coming days.

        Returns:
            int: Number of events served after the market-cap filter
        """
        today = today or get_market_today()
        query = EventQuery(date_from=today, date_to=today + timedelta(days=days))
        events = await self.get_events(query, today)
        logger.info(f"Prefetched upcoming earnings {query.cache_key()}: {len(events)} events")
        return len(events)
