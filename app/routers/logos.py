from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from app.dependencies import get_branding_service
from app.errors import ErrorCode, UpstreamError, http_error, internal_error, not_found
from app.services.branding_service import BrandingService
from app.services.reference_service import split_symbols
from app.utils.logger import create_logger

logger = create_logger(__name__)
router = APIRouter(prefix="/api/logos", tags=["Logos"])

# Browsers may keep proxied images for 30 days
IMAGE_CACHE_CONTROL = "public, max-age=2592000"


@router.get("", summary="Logos for several tickers")
async def get_logos(
    tickers: Optional[str] = Query(None, description="Comma-separated ticker symbols"),
    service: BrandingService = Depends(get_branding_service),
):
    if tickers is None:
        raise http_error(ErrorCode.BAD_REQUEST, "Missing tickers parameter")

    try:
        records = await service.get_branding_many(split_symbols(tickers))
    except Exception as e:
        logger.error(f"Error fetching logos: {e}", exc_info=True)
        raise internal_error()
    return {"logos": [record.model_dump(mode="json") for record in records]}


@router.get(
    "/{ticker}/image",
    summary="Proxy a logo image",
    description="Fetches the image from Polygon server-side so the API key never reaches the client.",
    responses={404: {"description": "No logo or no image of that type."}},
)
async def get_logo_image(
    ticker: str,
    kind: str = Query("icon", alias="type", pattern="^(icon|logo)$"),
    service: BrandingService = Depends(get_branding_service),
):
    try:
        image = await service.fetch_image(ticker, kind)
    except UpstreamError as e:
        logger.error(f"Error proxying {kind} image for {ticker}: {e}")
        raise http_error(ErrorCode.UPSTREAM_ERROR, "Failed to fetch image", 502)
    except Exception as e:
        logger.error(f"Error proxying {kind} image for {ticker}: {e}", exc_info=True)
        raise internal_error()

    if image is None:
        raise not_found(f"Image not available for {ticker.upper()}")

    content, content_type = image
    return Response(
        content=content,
        media_type=content_type,
        headers={"Cache-Control": IMAGE_CACHE_CONTROL},
    )


@router.post("/{ticker}/refresh", summary="Force a logo refresh from Polygon")
async def refresh_logo(
    ticker: str,
    service: BrandingService = Depends(get_branding_service),
):
    try:
        record = await service.refresh_branding(ticker)
    except Exception as e:
        logger.error(f"Error refreshing logo for {ticker}: {e}", exc_info=True)
        raise internal_error()

    if record is None:
        raise not_found(f"Logo not found for {ticker.upper()}")
    return record.model_dump(mode="json")


@router.delete("/cache/{ticker}", summary="Invalidate a ticker's logo")
async def invalidate_logo(
    ticker: str,
    service: BrandingService = Depends(get_branding_service),
):
    try:
        deleted = await service.invalidate(ticker)
    except Exception as e:
        logger.error(f"Error invalidating logo for {ticker}: {e}", exc_info=True)
        raise internal_error()
    return {"message": f"Cache cleared for {ticker.upper()}", "row_deleted": deleted}


@router.get(
    "/{ticker}",
    summary="Logo for a ticker",
    responses={404: {"description": "No logo for the ticker."}},
)
async def get_logo(
    ticker: str,
    service: BrandingService = Depends(get_branding_service),
):
    try:
        record = await service.get_branding(ticker)
    except Exception as e:
        logger.error(f"Error fetching logo for {ticker}: {e}", exc_info=True)
        raise internal_error()

    if record is None:
        raise not_found(f"Logo not found for {ticker.upper()}")
    return record.model_dump(mode="json")
