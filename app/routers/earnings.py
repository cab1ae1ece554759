from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.dependencies import get_calendar_service
from app.errors import ErrorCode, http_error, internal_error
from app.schemas.calendar import EventQuery
from app.services.calendar_service import CalendarService
from app.utils.logger import create_logger

logger = create_logger(__name__)
router = APIRouter(prefix="/api/earnings", tags=["Earnings"])


def get_event_query(
    date_from: Optional[str] = Query(None, alias="dateFrom", description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, alias="dateTo", description="YYYY-MM-DD"),
    tickers: Optional[str] = Query(None, description="Comma-separated ticker symbols"),
    importance: Optional[int] = Query(None, ge=0, le=5, description="Minimum importance (0-5)"),
) -> EventQuery:
    """
    Dependency that turns request parameters into an EventQuery.

    Raises:
        HTTPException: 400 for dates that are not ISO formatted
    """
    try:
        return EventQuery.from_params(date_from, date_to, tickers, importance)
    except ValueError as e:
        raise http_error(ErrorCode.BAD_REQUEST, f"Invalid date: {e}")


@router.get(
    "/primary",
    summary="Top earnings per session",
    description=(
        "The five largest before-market and after-market reports for each date. "
        "Fast endpoint for the initial render."
    ),
)
async def get_primary_earnings(
    query: EventQuery = Depends(get_event_query),
    service: CalendarService = Depends(get_calendar_service),
):
    try:
        events = await service.get_primary_events(query)
    except Exception as e:
        logger.error(f"Error fetching primary earnings for {query.cache_key()}: {e}", exc_info=True)
        raise internal_error()
    return [event.model_dump(mode="json") for event in events]


@router.get(
    "/secondary",
    summary="Remaining earnings",
    description="Every event not included in /primary for the same parameters.",
)
async def get_secondary_earnings(
    query: EventQuery = Depends(get_event_query),
    service: CalendarService = Depends(get_calendar_service),
):
    try:
        events = await service.get_secondary_events(query)
    except Exception as e:
        logger.error(f"Error fetching secondary earnings for {query.cache_key()}: {e}", exc_info=True)
        raise internal_error()
    return [event.model_dump(mode="json") for event in events]


@router.get(
    "",
    summary="Earnings calendar",
    description="Events for a date range, sorted by market cap (largest first).",
)
async def get_earnings(
    query: EventQuery = Depends(get_event_query),
    service: CalendarService = Depends(get_calendar_service),
):
    try:
        events = await service.get_events(query)
    except Exception as e:
        logger.error(f"Error fetching earnings for {query.cache_key()}: {e}", exc_info=True)
        raise internal_error()
    return [event.model_dump(mode="json") for event in events]


@router.delete("/cache", summary="Clear cached earnings queries")
async def invalidate_earnings(
    ticker: Optional[str] = Query(None, description="Also delete this ticker's stored events"),
    service: CalendarService = Depends(get_calendar_service),
):
    try:
        result = await service.invalidate(ticker)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error invalidating earnings cache: {e}", exc_info=True)
        raise internal_error()
    return {"message": "Earnings cache cleared", **result}
