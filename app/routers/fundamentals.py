from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.dependencies import get_reference_service
from app.errors import ErrorCode, http_error, internal_error, not_found
from app.services.reference_service import ReferenceService, split_symbols
from app.utils.logger import create_logger

logger = create_logger(__name__)
router = APIRouter(prefix="/api/fundamentals", tags=["Fundamentals"])


@router.get(
    "",
    summary="Company fundamentals",
    description=(
        "Fundamentals for one ticker (`ticker=AAPL`) or several "
        "(`tickers=AAPL,MSFT`). Served from Redis, then the database, then Polygon."
    ),
    responses={
        400: {"description": "Neither ticker nor tickers given."},
        404: {"description": "No fundamentals for the ticker."},
    },
)
async def get_fundamentals(
    ticker: Optional[str] = Query(None, description="Single ticker symbol"),
    tickers: Optional[str] = Query(None, description="Comma-separated ticker symbols"),
    service: ReferenceService = Depends(get_reference_service),
):
    if not ticker and tickers is None:
        raise http_error(ErrorCode.BAD_REQUEST, "Missing ticker or tickers parameter")

    try:
        if ticker:
            record = await service.get_reference(ticker)
            if record is None:
                raise not_found(f"No fundamentals found for {ticker.upper()}")
            return {"fundamentals": record.model_dump(mode="json")}

        symbols = split_symbols(tickers)
        if not symbols:
            return {"fundamentals": []}

        records = await service.get_reference_many(symbols)
        return {"fundamentals": [record.model_dump(mode="json") for record in records.values()]}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching fundamentals: {e}", exc_info=True)
        raise internal_error()


@router.delete("/cache/{ticker}", summary="Invalidate fundamentals for a ticker")
async def invalidate_fundamentals(
    ticker: str,
    service: ReferenceService = Depends(get_reference_service),
):
    try:
        deleted = await service.invalidate(ticker)
    except Exception as e:
        logger.error(f"Error invalidating fundamentals for {ticker}: {e}", exc_info=True)
        raise internal_error()
    return {"message": f"Cache cleared for {ticker.upper()}", "row_deleted": deleted}
