from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from app.config import BASE_URL
from app.dependencies import get_services
from app.errors import ErrorCode, http_error, internal_error
from app.schemas.branding import BrandingRecord
from app.services import ServiceRegistry
from app.services.reference_service import split_symbols
from app.utils.logger import create_logger

logger = create_logger(__name__)
router = APIRouter(prefix="/api/logo-and-market-cap", tags=["Logos", "Market Cap"])


def format_logo(record: BrandingRecord, base_url: str) -> Dict:
    """
    Client logo shape with image links pointing at our proxy endpoint.
    """
    image_base = f"{base_url}/api/logos/{record.ticker}/image"
    logo_url = f"{image_base}?type=logo" if record.logo_url else None
    icon_url = f"{image_base}?type=icon" if record.icon_url else None
    return {
        "ticker": record.ticker,
        "exchange": record.exchange or "",
        "name": record.company_name,
        "files": {
            "logo_light": logo_url,
            "mark_light": icon_url,
            "logo_dark": logo_url,
            "mark_dark": icon_url,
        },
        "updated": record.updated_at.isoformat() + "Z" if record.updated_at else None,
    }


@router.get(
    "",
    summary="Logos and market caps in one call",
    description="Only tickers with a market cap are returned; logos are fetched for those tickers only.",
)
async def get_logo_and_market_cap(
    request: Request,
    tickers: Optional[str] = Query(None, description="Comma-separated ticker symbols"),
    services: ServiceRegistry = Depends(get_services),
):
    if tickers is None:
        raise http_error(ErrorCode.BAD_REQUEST, "Tickers parameter is required")

    symbols = split_symbols(tickers)
    if not symbols:
        return {"logos": [], "marketCaps": {}}

    try:
        market_caps = await services.reference.get_market_caps(symbols)
        if not market_caps:
            return {"logos": [], "marketCaps": {}}
        logos = await services.branding.get_branding_many(list(market_caps))
    except Exception as e:
        logger.error(f"Error fetching logos and market caps: {e}", exc_info=True)
        raise internal_error()

    base_url = BASE_URL or str(request.base_url).rstrip("/")
    return {
        "logos": [format_logo(record, base_url) for record in logos],
        "marketCaps": {symbol: record.market_cap for symbol, record in market_caps.items()},
    }
