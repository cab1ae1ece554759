"""
Reference Data Service

Fundamentals and market capitalization with multi-level caching:
1. Redis cache (7 days, market cap 24 hours) - Hot cache, complete records only
2. Database (7 days, market cap 24 hours) - System of record
3. Polygon API - Six concurrent sub-fetches, merged field by field

A refresh never erases known data: each sub-fetch result is overlaid on
the stored record with merge_patch, so a failed or partial fetch leaves
the previous values in place. Writes go through the background writer
and never delay the response.
"""

import asyncio
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from app.config import (
    MARKET_CAP_CACHE_TTL,
    MARKET_CAP_STALE_AFTER,
    NEGATIVE_CACHE_TTL,
    REFERENCE_CACHE_TTL,
    REFERENCE_STALE_AFTER,
    WEEK_52_STALE_AFTER,
)
from app.errors import UpstreamError
from app.schemas.reference import MarketCapRecord, ReferenceRecord
from app.services.refresh_policy import (
    categories_to_fetch,
    compute_margins,
    is_complete,
    is_stale,
    merge_patch,
    missing_fields,
    remaining_freshness,
)
from app.services.upstream_client import PolygonClient
from app.stores.durable_store import FundamentalStore
from app.stores.fast_cache import FastCache, market_cap_key, reference_key
from app.utils.background import BackgroundWriter
from app.utils.logger import create_logger
from app.utils.market_hours import utcnow

logger = create_logger(__name__)

# Cached in place of a record for symbols the upstream API does not know
NOT_FOUND_MARKER = {"not_found": True}


def normalize_symbols(symbols: Iterable[str]) -> List[str]:
    """Upper-case, strip and de-duplicate, keeping first-seen order."""
    seen = []
    for symbol in symbols:
        symbol = (symbol or "").strip().upper()
        if symbol and symbol not in seen:
            seen.append(symbol)
    return seen


def split_symbols(raw: Optional[str]) -> List[str]:
    """Parse a comma-separated ticker list ("aapl, MSFT,,aapl" -> ["AAPL", "MSFT"])."""
    if not raw:
        return []
    return normalize_symbols(raw.split(","))


class ReferenceService:
    """Service for fetching and caching company reference data."""

    def __init__(
        self,
        cache: FastCache,
        store: FundamentalStore,
        upstream: PolygonClient,
        writer: BackgroundWriter,
    ):
        """
        Initialize reference data service.

        Args:
            cache: Fast cache (Redis)
            store: Durable store for the fundamentals table
            upstream: Polygon client
            writer: Background writer for cache/database persistence
        """
        self.cache = cache
        self.store = store
        self.upstream = upstream
        self.writer = writer
        self.stale_after = timedelta(seconds=REFERENCE_STALE_AFTER)
        self.market_cap_stale_after = timedelta(seconds=MARKET_CAP_STALE_AFTER)
        self.week_52_stale_after = timedelta(seconds=WEEK_52_STALE_AFTER)

        self.fetchers = {
            "identity": upstream.fetch_identity,
            "ratios": upstream.fetch_ratios,
            "income": upstream.fetch_income_statement,
            "balance": upstream.fetch_balance_sheet,
            "cash_flow": upstream.fetch_cash_flow,
            "week_52": upstream.fetch_52_week_range,
        }

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    async def get_reference(self, symbol: str) -> Optional[ReferenceRecord]:
        """
        Get reference data with multi-level caching.

        Args:
            symbol: Ticker symbol (case-insensitive)

        Returns:
            ReferenceRecord or None when the symbol is unknown upstream
            (or unavailable and never stored)
        """
        symbol = symbol.strip().upper()
        if not symbol:
            return None

        cached = await self.cache.get(reference_key(symbol))
        if cached is not None:
            record = self._from_cache(symbol, cached)
            if record is not None or cached == NOT_FOUND_MARKER:
                return record

        return await self._load(symbol)

    async def get_reference_many(self, symbols: Iterable[str]) -> Dict[str, ReferenceRecord]:
        """
        Get reference data for several symbols.

        Returns:
            dict: symbol -> record, in request order; unknown symbols are omitted
        """
        symbols = normalize_symbols(symbols)
        if not symbols:
            return {}

        cached_values = await self.cache.get_many([reference_key(s) for s in symbols])

        found: Dict[str, ReferenceRecord] = {}
        misses = []
        for symbol, cached in zip(symbols, cached_values):
            if cached is None:
                misses.append(symbol)
                continue
            if cached == NOT_FOUND_MARKER:
                continue
            record = self._from_cache(symbol, cached)
            if record is None:
                misses.append(symbol)
            else:
                found[symbol] = record

        if misses:
            logger.info(f"Reference cache misses: {len(misses)}/{len(symbols)}")
            loaded = await asyncio.gather(*(self._load(symbol) for symbol in misses))
            for symbol, record in zip(misses, loaded):
                if record is not None:
                    found[symbol] = record

        return {symbol: found[symbol] for symbol in symbols if symbol in found}

    def _from_cache(self, symbol: str, cached) -> Optional[ReferenceRecord]:
        """
        Interpret a cached payload.

        Returns:
            The record for a complete cache entry; None for the negative
            marker or for an entry that has to be reloaded
        """
        if cached == NOT_FOUND_MARKER:
            logger.info(f"Negative cache hit for {symbol}")
            return None

        try:
            record = ReferenceRecord.model_validate(cached)
        except ValueError as e:
            logger.error(f"Corrupt reference cache entry for {symbol}: {e}")
            return None

        if not is_complete(record):
            logger.info(f"Ignoring incomplete cached record for {symbol}: missing {missing_fields(record)}")
            return None

        logger.info(f"Redis cache hit for {symbol}")
        return record

    async def _load(self, symbol: str) -> Optional[ReferenceRecord]:
        existing = await self._get_from_db(symbol)

        if existing is None:
            return await self._refresh(symbol, None, stale=True)

        stale = is_stale(existing.updated_at, self.stale_after)
        if not stale and is_complete(existing):
            logger.info(f"DB hit for {symbol}")
            ttl = remaining_freshness(existing.updated_at, self.stale_after)
            self.writer.submit(
                self.cache.set_with_ttl(reference_key(symbol), existing.model_dump(mode="json"), ttl),
                f"cache reference {symbol}",
            )
            return existing

        if stale:
            logger.info(f"Stored reference data for {symbol} is stale, refreshing")
        else:
            logger.info(f"Stored reference data for {symbol} is incomplete: missing {missing_fields(existing)}")
        return await self._refresh(symbol, existing, stale)

    async def _get_from_db(self, symbol: str) -> Optional[ReferenceRecord]:
        try:
            return await self.store.find_by_key(symbol)
        except Exception as e:
            logger.error(f"Database read error for {symbol}: {e}", exc_info=True)
            return None

    async def _refresh(
        self,
        symbol: str,
        existing: Optional[ReferenceRecord],
        stale: bool,
    ) -> Optional[ReferenceRecord]:
        """
        Fetch the needed categories from Polygon and merge them into the record.

        Args:
            symbol: Ticker symbol
            existing: Stored record, if any
            stale: Whether the stored record is past its staleness threshold

        Returns:
            The merged record, the unchanged stored record when nothing
            could be fetched, or None for an unknown symbol
        """
        categories = sorted(categories_to_fetch(existing, stale))
        logger.info(f"Fetching {symbol} from Polygon: {', '.join(categories)}")

        results = await asyncio.gather(
            *(self.fetchers[category](symbol) for category in categories),
            return_exceptions=True,
        )

        patch = {"ticker": symbol}
        fetched = set()
        # Categories that failed for a reason other than "no such data"
        transient = set()
        identity_error: Optional[Exception] = None

        for category, result in zip(categories, results):
            if isinstance(result, UpstreamError):
                logger.warning(f"Polygon {category} fetch failed for {symbol}: {result} ({result.code.value})")
                if not result.is_absent:
                    transient.add(category)
                if category == "identity":
                    identity_error = result
                continue
            if isinstance(result, Exception):
                logger.error(f"Unexpected {category} fetch error for {symbol}: {result}", exc_info=result)
                transient.add(category)
                if category == "identity":
                    identity_error = result
                continue
            patch.update(result)
            fetched.add(category)

        if existing is None and identity_error is not None:
            if isinstance(identity_error, UpstreamError) and identity_error.is_absent:
                logger.info(f"{symbol} not found upstream, caching negative result")
                self.writer.submit(
                    self.cache.set_with_ttl(reference_key(symbol), NOT_FOUND_MARKER, NEGATIVE_CACHE_TTL),
                    f"cache not-found {symbol}",
                )
            return None

        if not fetched:
            return existing

        # Margins only from this cycle's income statement
        if "income" in fetched:
            patch.update(compute_margins(patch))

        now = utcnow()
        # A gap fill leaves the record's age alone, and a stale row only
        # counts as refreshed when no category failed transiently
        if existing is None or (stale and not transient):
            patch["updated_at"] = now
        elif stale:
            logger.warning(f"Partial refresh for {symbol}, keeping it stale: {', '.join(sorted(transient))} failed")
        if "identity" in fetched and patch.get("market_cap") is not None:
            patch["market_cap_updated_at"] = now
        if "week_52" in fetched:
            patch["week_52_updated_at"] = now
        if existing is None and not patch.get("company_name"):
            patch["company_name"] = symbol

        record = merge_patch(existing, patch, ReferenceRecord)
        self._persist(record)

        if not is_complete(record):
            logger.warning(f"Reference data for {symbol} still incomplete: missing {missing_fields(record)}")
        return record

    def _persist(self, record: ReferenceRecord) -> None:
        """Hand the record to the background writer for the database and both cache keys."""
        symbol = record.ticker
        self.writer.submit(self.store.upsert(record), f"persist reference {symbol}")

        # A still-stale record stays out of the cache so the next read retries
        if is_stale(record.updated_at, self.stale_after):
            self.writer.submit(self.cache.delete(reference_key(symbol)), f"evict reference {symbol}")
        else:
            ttl = min(REFERENCE_CACHE_TTL, remaining_freshness(record.updated_at, self.stale_after))
            self.writer.submit(
                self.cache.set_with_ttl(reference_key(symbol), record.model_dump(mode="json"), ttl),
                f"cache reference {symbol}",
            )

        if record.market_cap is not None and record.market_cap_updated_at is not None:
            market_cap = MarketCapRecord(
                ticker=symbol,
                market_cap=record.market_cap,
                updated_at=record.market_cap_updated_at,
            )
            self.writer.submit(
                self.cache.set_with_ttl(market_cap_key(symbol), market_cap.model_dump(mode="json"), MARKET_CAP_CACHE_TTL),
                f"cache market cap {symbol}",
            )

    async def invalidate(self, symbol: str) -> bool:
        """
        Bust both tiers for a symbol.

        Returns:
            bool: True if a database row was deleted
        """
        symbol = symbol.strip().upper()
        await self.cache.delete(reference_key(symbol), market_cap_key(symbol))
        deleted = await self.store.delete_by_key(symbol)
        logger.info(f"Invalidated reference data for {symbol} (row deleted: {deleted})")
        return deleted

    async def purge_incomplete_cache(self) -> int:
        """
        Delete cached reference entries that fail the completeness check.

        Returns:
            int: Number of cache entries deleted
        """
        keys = await self.cache.scan("reference:*")
        if not keys:
            return 0

        values = await self.cache.get_many(keys)
        incomplete = []
        for key, value in zip(keys, values):
            if value is None or value == NOT_FOUND_MARKER:
                continue
            try:
                record = ReferenceRecord.model_validate(value)
            except ValueError:
                incomplete.append(key)
                continue
            if not is_complete(record):
                incomplete.append(key)

        deleted = await self.cache.delete(*incomplete)
        logger.info(f"Purged {deleted} incomplete reference cache entries (scanned {len(keys)})")
        return deleted

    # ------------------------------------------------------------------
    # Market cap
    # ------------------------------------------------------------------

    async def get_market_cap(self, symbol: str) -> Optional[MarketCapRecord]:
        """
        Get market capitalization (24-hour freshness).

        Args:
            symbol: Ticker symbol

        Returns:
            MarketCapRecord or None if no market cap is known
        """
        results = await self.get_market_caps([symbol])
        return results.get(symbol.strip().upper())

    async def get_market_caps(self, symbols: Iterable[str]) -> Dict[str, MarketCapRecord]:
        """
        Get market caps for several symbols with one cache round trip.

        Returns:
            dict: symbol -> MarketCapRecord, in request order, only symbols with a market cap
        """
        symbols = normalize_symbols(symbols)
        if not symbols:
            return {}

        found = await self._cached_market_caps(symbols)
        misses = [symbol for symbol in symbols if symbol not in found]

        stored: Dict[str, MarketCapRecord] = {}
        if misses:
            try:
                stored = await self.store.find_market_caps(misses)
            except Exception as e:
                logger.error(f"Database read error for market caps: {e}", exc_info=True)

        to_fetch = []
        for symbol in misses:
            record = stored.get(symbol)
            if record is not None and not is_stale(record.updated_at, self.market_cap_stale_after):
                found[symbol] = record
                ttl = remaining_freshness(record.updated_at, self.market_cap_stale_after)
                self.writer.submit(
                    self.cache.set_with_ttl(market_cap_key(symbol), record.model_dump(mode="json"), ttl),
                    f"cache market cap {symbol}",
                )
            else:
                to_fetch.append(symbol)

        if to_fetch:
            logger.info(f"Fetching market caps from Polygon for {len(to_fetch)} tickers")
            fetched = await asyncio.gather(*(self._fetch_market_cap(symbol) for symbol in to_fetch))
            for symbol, record in zip(to_fetch, fetched):
                # Serve the last known value when Polygon has nothing new
                record = record or stored.get(symbol)
                if record is not None:
                    found[symbol] = record

        return {symbol: found[symbol] for symbol in symbols if symbol in found}

    async def get_known_market_caps(self, symbols: Iterable[str]) -> Dict[str, float]:
        """
        Market caps already held in the cache or database; never calls Polygon.

        Returns:
            dict: symbol -> market cap
        """
        symbols = normalize_symbols(symbols)
        if not symbols:
            return {}

        found = await self._cached_market_caps(symbols)
        misses = [symbol for symbol in symbols if symbol not in found]
        if misses:
            try:
                found.update(await self.store.find_market_caps(misses))
            except Exception as e:
                logger.error(f"Database read error for market caps: {e}", exc_info=True)

        return {symbol: found[symbol].market_cap for symbol in symbols if symbol in found}

    async def _cached_market_caps(self, symbols: List[str]) -> Dict[str, MarketCapRecord]:
        values = await self.cache.get_many([market_cap_key(s) for s in symbols])
        found = {}
        for symbol, value in zip(symbols, values):
            if value is None:
                continue
            try:
                found[symbol] = MarketCapRecord.model_validate(value)
            except ValueError as e:
                logger.error(f"Corrupt market cap cache entry for {symbol}: {e}")
        return found

    async def _fetch_market_cap(self, symbol: str) -> Optional[MarketCapRecord]:
        try:
            identity = await self.upstream.fetch_identity(symbol)
        except UpstreamError as e:
            logger.warning(f"Polygon market cap fetch failed for {symbol}: {e} ({e.code.value})")
            return None

        market_cap = identity.get("market_cap")
        if market_cap is None:
            logger.info(f"No market cap reported for {symbol}")
            return None

        record = MarketCapRecord(ticker=symbol, market_cap=market_cap, updated_at=utcnow())
        self.writer.submit(
            self.store.upsert_market_cap(
                symbol,
                identity.get("company_name") or symbol,
                market_cap,
                identity.get("shares_outstanding"),
            ),
            f"persist market cap {symbol}",
        )
        self.writer.submit(
            self.cache.set_with_ttl(market_cap_key(symbol), record.model_dump(mode="json"), MARKET_CAP_CACHE_TTL),
            f"cache market cap {symbol}",
        )
        return record

    async def refresh_week_52_range(self, symbols: Iterable[str]) -> int:
        """
        Refresh the 52-week range for stored tickers whose range is missing
        or older than 12 hours.

        Returns:
            int: Number of tickers updated
        """
        symbols = normalize_symbols(symbols)
        if not symbols:
            return 0

        stored = await self.store.find_many(symbols)
        needing = [
            symbol for symbol, record in stored.items()
            if record.week_52_high is None
            or record.week_52_low is None
            or is_stale(record.week_52_updated_at, self.week_52_stale_after)
        ]
        if not needing:
            logger.info(f"All {len(stored)} stored tickers have a fresh 52-week range")
            return 0

        logger.info(f"Fetching 52-week range for {len(needing)} tickers")
        results = await asyncio.gather(
            *(self.upstream.fetch_52_week_range(symbol) for symbol in needing),
            return_exceptions=True,
        )

        updated = 0
        for symbol, result in zip(needing, results):
            if isinstance(result, Exception):
                logger.warning(f"52-week range fetch failed for {symbol}: {result}")
                continue
            if await self.store.update_week_52_range(symbol, result["week_52_high"], result["week_52_low"]):
                updated += 1
                # Drop the cached copy so the next read picks up the new range
                await self.cache.delete(reference_key(symbol))
        return updated
