"""
Branding Service

Company logos with multi-level caching:
1. Redis cache (30 days)
2. Database (90 days)
3. Polygon ticker details (branding block)

Records are replaced wholesale on refresh. Stored URLs never carry the
API key; images are fetched server-side through fetch_image.
"""

import asyncio
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from app.config import LOGO_CACHE_TTL, LOGO_STALE_AFTER
from app.errors import UpstreamError
from app.schemas.branding import BrandingRecord
from app.services.refresh_policy import is_stale
from app.services.reference_service import normalize_symbols
from app.services.upstream_client import PolygonClient
from app.stores.durable_store import LogoStore
from app.stores.fast_cache import FastCache, logo_key
from app.utils.background import BackgroundWriter
from app.utils.logger import create_logger
from app.utils.market_hours import utcnow

logger = create_logger(__name__)

IMAGE_KINDS = ("icon", "logo")


class BrandingService:
    """Service for fetching and caching company logos."""

    def __init__(
        self,
        cache: FastCache,
        store: LogoStore,
        upstream: PolygonClient,
        writer: BackgroundWriter,
    ):
        self.cache = cache
        self.store = store
        self.upstream = upstream
        self.writer = writer
        self.stale_after = timedelta(seconds=LOGO_STALE_AFTER)

    async def get_branding(self, symbol: str) -> Optional[BrandingRecord]:
        """
        Get branding for a ticker.

        Args:
            symbol: Ticker symbol

        Returns:
            BrandingRecord or None when Polygon has no branding for it
        """
        symbol = symbol.strip().upper()
        if not symbol:
            return None

        cached = await self.cache.get(logo_key(symbol))
        if cached:
            try:
                return BrandingRecord.model_validate(cached)
            except ValueError as e:
                logger.error(f"Corrupt logo cache entry for {symbol}: {e}")

        try:
            stored = await self.store.find_by_key(symbol)
        except Exception as e:
            logger.error(f"Database read error for logo {symbol}: {e}", exc_info=True)
            stored = None

        if stored is not None and not is_stale(stored.updated_at, self.stale_after):
            logger.info(f"DB hit for logo {symbol}")
            self.writer.submit(
                self.cache.set_with_ttl(logo_key(symbol), stored.model_dump(mode="json"), LOGO_CACHE_TTL),
                f"cache logo {symbol}",
            )
            return stored

        record = await self._fetch(symbol)
        # An old logo is better than none
        return record or stored

    async def _fetch(self, symbol: str) -> Optional[BrandingRecord]:
        logger.info(f"Fetching logo from Polygon for {symbol}")
        try:
            branding = await self.upstream.fetch_branding(symbol)
        except UpstreamError as e:
            logger.warning(f"Polygon branding fetch failed for {symbol}: {e} ({e.code.value})")
            return None

        record = BrandingRecord(
            ticker=symbol,
            icon_url=branding.get("icon_url"),
            logo_url=branding.get("logo_url"),
            company_name=branding.get("company_name") or symbol,
            exchange=branding.get("exchange"),
            updated_at=utcnow(),
        )
        self.writer.submit(self.store.upsert(record), f"persist logo {symbol}")
        self.writer.submit(
            self.cache.set_with_ttl(logo_key(symbol), record.model_dump(mode="json"), LOGO_CACHE_TTL),
            f"cache logo {symbol}",
        )
        return record

    async def get_branding_many(self, symbols: Iterable[str]) -> List[BrandingRecord]:
        """Branding for several tickers, in request order, skipping unknown ones."""
        symbols = normalize_symbols(symbols)
        results = await asyncio.gather(*(self.get_branding(symbol) for symbol in symbols))
        return [record for record in results if record is not None]

    async def refresh_branding(self, symbol: str) -> Optional[BrandingRecord]:
        """
        Drop the cached logo and run the lookup again, so the entry is
        repopulated from the database or, failing that, from Polygon.
        """
        symbol = symbol.strip().upper()
        await self.cache.delete(logo_key(symbol))
        return await self.get_branding(symbol)

    async def fetch_image(self, symbol: str, kind: str = "icon") -> Optional[Tuple[bytes, str]]:
        """
        Download the icon or full logo for a ticker.

        Args:
            symbol: Ticker symbol
            kind: "icon" or "logo"

        Returns:
            tuple: (image bytes, content type), or None when no such image exists

        Raises:
            UpstreamError: When the image download fails
        """
        record = await self.get_branding(symbol)
        if record is None:
            return None

        url = record.logo_url if kind == "logo" else record.icon_url
        if not url:
            return None
        return await self.upstream.fetch_image(url)

    async def invalidate(self, symbol: str) -> bool:
        symbol = symbol.strip().upper()
        await self.cache.delete(logo_key(symbol))
        deleted = await self.store.delete_by_key(symbol)
        logger.info(f"Invalidated logo for {symbol} (row deleted: {deleted})")
        return deleted
