"""Celery application configuration and beat schedule."""

from celery import Celery
from celery.schedules import crontab

from carscout.config import get_settings

settings = get_settings()

celery_app = Celery(
    "carscout",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "carscout.tasks.scrape_tasks",
        "carscout.tasks.maintenance_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.schedule_timezone,
    task_track_started=True,
    task_time_limit=1800,
    task_soft_time_limit=1740,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "dispatch-due-dealerships": {
        "task": "carscout.tasks.scrape_tasks.dispatch_due_dealerships",
        "schedule": crontab(minute=0),
    },
    "assign-scraper-orders": {
        "task": "carscout.tasks.scrape_tasks.assign_scraper_orders",
        "schedule": crontab(minute=45, hour=23),
    },
    "deprecate-stale-urls": {
        "task": "carscout.tasks.maintenance_tasks.deprecate_stale_urls",
        "schedule": crontab(minute=30, hour=3),
    },
    "mark-stale-listings": {
        "task": "carscout.tasks.maintenance_tasks.mark_stale_listings",
        "schedule": crontab(minute=0, hour=4),
    },
}
