"""Discovered URL lifecycle: discovered -> processing -> processed | failed -> deprecated.

A failed URL is deprecated once its consecutive failures reach the
threshold, or when its expiry passes. Deprecated URLs are inactive and
never transition again.
"""

import logging
from datetime import datetime, timedelta, timezone

from carscout.config import get_settings
from carscout.models.base import as_utc
from carscout.models.discovered_url import DiscoveredURL

logger = logging.getLogger(__name__)


class DiscoveredURLTracker:

    def __init__(self, db, failure_threshold: int | None = None, ttl_days: int | None = None):
        settings = get_settings()
        self.db = db
        self.failure_threshold = failure_threshold or settings.url_failure_threshold
        self.ttl = timedelta(days=ttl_days or settings.discovered_url_ttl_days)

    def get(self, url: str) -> DiscoveredURL | None:
        return self.db.query(DiscoveredURL).filter(DiscoveredURL.url == url).first()

    def record_discovered(
        self,
        url: str,
        url_type: str = "listing",
        dealership_id=None,
        parent_url: str | None = None,
        discovery_method: str = "html_parsing",
    ) -> DiscoveredURL:
        """Insert a URL if unseen. Existing rows are returned untouched."""
        row = self.get(url)
        if row is not None:
            return row
        now = datetime.now(timezone.utc)
        row = DiscoveredURL(
            url=url,
            url_type=url_type,
            dealership_id=dealership_id,
            parent_url=parent_url,
            discovery_method=discovery_method,
            status="discovered",
            expires_at=now + self.ttl,
        )
        self.db.add(row)
        self.db.commit()
        return row

    def is_processable(self, url: str) -> bool:
        row = self.get(url)
        return row is None or row.status != "deprecated"

    def mark_processing(self, url: str) -> DiscoveredURL:
        row = self.get(url) or self.record_discovered(url)
        if self._is_terminal(row, "processing"):
            return row
        row.status = "processing"
        row.processing_attempts = (row.processing_attempts or 0) + 1
        row.last_processed_at = datetime.now(timezone.utc)
        self.db.commit()
        return row

    def mark_processed(self, url: str, vehicles_extracted: int = 0) -> DiscoveredURL:
        row = self.get(url) or self.record_discovered(url)
        if self._is_terminal(row, "processed"):
            return row
        now = datetime.now(timezone.utc)
        row.status = "processed"
        row.consecutive_failures = 0
        row.last_error = None
        row.vehicles_extracted = (row.vehicles_extracted or 0) + vehicles_extracted
        if vehicles_extracted:
            row.last_successful_extraction = now
        row.expires_at = now + self.ttl
        self.db.commit()
        return row

    def mark_failed(self, url: str, error: str) -> DiscoveredURL:
        row = self.get(url) or self.record_discovered(url)
        if self._is_terminal(row, "failed"):
            return row
        row.status = "failed"
        row.consecutive_failures = (row.consecutive_failures or 0) + 1
        row.last_error = error[:2000]
        if row.consecutive_failures >= self.failure_threshold:
            logger.warning(f"Deprecating {url} after {row.consecutive_failures} consecutive failures")
            self._deprecate(row)
        self.db.commit()
        return row

    def deprecate_expired(self, now: datetime | None = None) -> int:
        """Deprecate failed URLs whose expiry has passed. Returns the count."""
        now = now or datetime.now(timezone.utc)
        candidates = self.db.query(DiscoveredURL).filter(
            DiscoveredURL.status == "failed",
            DiscoveredURL.is_active == True,  # noqa: E712
            DiscoveredURL.expires_at.isnot(None),
        ).all()

        count = 0
        for row in candidates:
            if as_utc(row.expires_at) <= now:
                self._deprecate(row, now)
                count += 1
        self.db.commit()

        if count:
            logger.info(f"Deprecated {count} expired URLs")
        return count

    @staticmethod
    def _deprecate(row: DiscoveredURL, now: datetime | None = None) -> None:
        row.status = "deprecated"
        row.is_active = False
        row.deprecated_at = now or datetime.now(timezone.utc)

    @staticmethod
    def _is_terminal(row: DiscoveredURL, target: str) -> bool:
        if row.status == "deprecated":
            logger.info(f"Ignoring {target} transition for deprecated URL {row.url}")
            return True
        return False
