"""Dealership scheduling: hourly buckets and frequency tiers.

Every enabled dealership gets a scraper_order bucket in 1..24 assigned
round-robin (index mod 24 + 1), so each hourly tick touches about 1/24 of
all sources. A dealership is due when it was never explored or when more
than its tier window (1h, 1d, 1w) has passed since the last exploration.
"""

import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from carscout.config import get_settings
from carscout.models.base import as_utc
from carscout.models.dealership import Dealership

logger = logging.getLogger(__name__)

BUCKETS = 24

FREQUENCY_WINDOWS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
}

FREQUENCY_PRIORITY = {"hourly": 3, "daily": 2, "weekly": 1}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class DealershipScheduler:

    def __init__(self, db, tz: str | None = None):
        self.db = db
        tz = tz or get_settings().schedule_timezone
        self.tz = timezone.utc if tz.upper() == "UTC" else ZoneInfo(tz)

    @staticmethod
    def is_due(dealership: Dealership, now: datetime | None = None) -> bool:
        last = as_utc(dealership.last_explored_at)
        if last is None:
            return True
        now = now or datetime.now(timezone.utc)
        window = FREQUENCY_WINDOWS.get(dealership.exploration_frequency, FREQUENCY_WINDOWS["daily"])
        return now - last > window

    def get_current_bucket(self, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        return now.astimezone(self.tz).hour + 1

    def _enabled(self):
        return self.db.query(Dealership).filter(
            Dealership.is_active == True,  # noqa: E712
            Dealership.exploration_enabled == True,  # noqa: E712
        )

    def assign_scraper_orders(self) -> int:
        """Spread enabled dealerships evenly over the 24 buckets. Returns the count."""
        dealerships = self._enabled().order_by(Dealership.created_at, Dealership.id).all()
        for index, dealership in enumerate(dealerships):
            dealership.scraper_order = index % BUCKETS + 1
        self.db.commit()
        logger.info(f"Assigned scraper orders to {len(dealerships)} dealerships")
        return len(dealerships)

    def get_due_sources(
        self,
        bucket: int | None = None,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> list[Dealership]:
        """Enabled, due dealerships: hourly tier first, then bucket order, then most stale.

        With a bucket, only that bucket's dealerships plus every hourly
        dealership are considered.
        """
        now = now or datetime.now(timezone.utc)
        candidates = self._enabled().all()
        if bucket is not None:
            candidates = [
                d for d in candidates
                if d.scraper_order == bucket or d.exploration_frequency == "hourly"
            ]

        due = [d for d in candidates if self.is_due(d, now)]
        due.sort(key=lambda d: (
            -FREQUENCY_PRIORITY.get(d.exploration_frequency, 0),
            d.scraper_order or BUCKETS + 1,
            as_utc(d.last_explored_at) or _EPOCH,
        ))
        return due[:limit] if limit else due

    def mark_explored(self, dealership_id, now: datetime | None = None) -> Dealership | None:
        """Stamp last_explored_at. Never moves it backwards."""
        now = now or datetime.now(timezone.utc)
        dealership = self.db.get(Dealership, dealership_id)
        if dealership is None:
            logger.warning(f"Cannot mark unknown dealership {dealership_id} as explored")
            return None
        last = as_utc(dealership.last_explored_at)
        if last is None or now > last:
            dealership.last_explored_at = now
            self.db.commit()
        return dealership
