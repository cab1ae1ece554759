"""
Celery Application Configuration

Configures Celery for periodic cache maintenance with a Redis broker.
"""

from celery import Celery

from app.config import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

# Create Celery app
celery_app = Celery(
    "earnings_db",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=["app.tasks.cache_maintenance"],  # Import task modules
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max per task
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
)

# Beat schedule (periodic tasks)
celery_app.conf.beat_schedule = {
    # Drop cached fundamentals missing exchange/sector/industry/... so they refetch
    "purge-incomplete-reference-cache": {
        "task": "app.tasks.cache_maintenance.purge_incomplete_reference_cache",
        "schedule": 3600.0,  # Every hour
        "options": {
            "expires": 3000,
        },
    },

    # Keep the coming week's earnings and their market caps warm
    "prefetch-upcoming-earnings": {
        "task": "app.tasks.cache_maintenance.prefetch_upcoming_earnings",
        "schedule": 1800.0,  # Every 30 minutes
        "options": {
            "expires": 1500,
        },
    },
}

if __name__ == "__main__":
    celery_app.start()
