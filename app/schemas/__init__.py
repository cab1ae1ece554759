"""
API Schemas

Pydantic records shared by services, caches and routers.
"""

from app.schemas.branding import BrandingRecord
from app.schemas.calendar import CalendarEvent, EventQuery
from app.schemas.news import NewsArticle, NewsQuery
from app.schemas.reference import MarketCapRecord, ReferenceRecord

__all__ = [
    "BrandingRecord",
    "CalendarEvent",
    "EventQuery",
    "MarketCapRecord",
    "NewsArticle",
    "NewsQuery",
    "ReferenceRecord",
]
