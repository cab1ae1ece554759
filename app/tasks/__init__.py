"""
Background Tasks

Celery tasks for periodic cache maintenance.
"""

from app.tasks.cache_maintenance import (
    prefetch_upcoming_earnings,
    purge_incomplete_reference_cache,
)

__all__ = [
    "prefetch_upcoming_earnings",
    "purge_incomplete_reference_cache",
]
