"""Maintenance tasks: URL expiry and listing staleness."""

import logging
from datetime import datetime, timezone, timedelta

from carscout.config import get_settings
from carscout.tasks.celery_app import celery_app
from carscout.models.base import get_session
from carscout.models.listing import Listing
from carscout.services.url_tracker import DiscoveredURLTracker

logger = logging.getLogger(__name__)


@celery_app.task(name="carscout.tasks.maintenance_tasks.deprecate_stale_urls")
def deprecate_stale_urls():
    """Deprecate failed discovered URLs whose TTL has passed."""
    db = get_session()
    try:
        count = DiscoveredURLTracker(db).deprecate_expired()
        return {"deprecated": count}
    finally:
        db.close()


@celery_app.task(name="carscout.tasks.maintenance_tasks.mark_stale_listings")
def mark_stale_listings():
    """Mark listings not seen in `listing_stale_days` as inactive."""
    db = get_session()
    try:
        cutoff = datetime.now(timezone.utc) - timedelta(days=get_settings().listing_stale_days)
        result = db.query(Listing).filter(
            Listing.is_active == True,  # noqa: E712
            Listing.last_seen_at < cutoff,
        ).update({"is_active": False}, synchronize_session=False)
        db.commit()
        logger.info(f"Marked {result} listings as stale")
        return {"marked_stale": result}
    finally:
        db.close()
