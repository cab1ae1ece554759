from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.dependencies import get_reference_service
from app.errors import ErrorCode, http_error, internal_error
from app.services.reference_service import ReferenceService, split_symbols
from app.utils.logger import create_logger

logger = create_logger(__name__)
router = APIRouter(prefix="/api/market-cap", tags=["Market Cap"])


@router.get(
    "",
    summary="Market capitalization for several tickers",
    description="Tickers without a known market cap are left out of the result.",
)
async def get_market_caps(
    tickers: Optional[str] = Query(None, description="Comma-separated ticker symbols"),
    debug: bool = Query(False, description="Add requested/found/missing details"),
    service: ReferenceService = Depends(get_reference_service),
):
    if tickers is None:
        raise http_error(ErrorCode.BAD_REQUEST, "Missing tickers parameter")

    symbols = split_symbols(tickers)
    if not symbols:
        return {"marketCaps": []}

    try:
        records = await service.get_market_caps(symbols)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching market caps: {e}", exc_info=True)
        raise internal_error()

    body = {"marketCaps": [record.model_dump(mode="json") for record in records.values()]}
    if debug:
        body["debug"] = {
            "requested": len(symbols),
            "found": len(records),
            "missing": [symbol for symbol in symbols if symbol not in records],
        }
    return body


@router.delete("/cache/{ticker}", summary="Invalidate market cap for a ticker")
async def invalidate_market_cap(
    ticker: str,
    service: ReferenceService = Depends(get_reference_service),
):
    try:
        await service.invalidate(ticker)
    except Exception as e:
        logger.error(f"Error invalidating market cap for {ticker}: {e}", exc_info=True)
        raise internal_error()
    return {"message": f"Cache cleared for {ticker.upper()}"}
