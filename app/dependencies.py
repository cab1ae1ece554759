from fastapi import Request

from app.services import ServiceRegistry
from app.services.branding_service import BrandingService
from app.services.calendar_service import CalendarService
from app.services.news_service import NewsService
from app.services.reference_service import ReferenceService


def get_services(request: Request) -> ServiceRegistry:
    """
    Dependency to provide the service registry built in the app lifespan.

    Returns:
        ServiceRegistry: Shared services, stores and background writer.
    """
    return request.app.state.services


def get_reference_service(request: Request) -> ReferenceService:
    """
    Dependency to provide the reference data (fundamentals / market cap) service.
    """
    return request.app.state.services.reference


def get_calendar_service(request: Request) -> CalendarService:
    return request.app.state.services.calendar


def get_branding_service(request: Request) -> BrandingService:
    return request.app.state.services.branding


def get_news_service(request: Request) -> NewsService:
    return request.app.state.services.news
