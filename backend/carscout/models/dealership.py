"""Dealership model: per-site crawl config and schedule state."""

from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, Index, Text
from sqlalchemy.orm import relationship

from carscout.models.base import Base, TimestampMixin, UUIDMixin


class Dealership(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "dealerships"

    # Identity
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    base_url = Column(String(500))
    used_vehicles_url = Column(String(500))

    # Crawl config
    seed_urls = Column(JSON, default=list)
    allow_patterns = Column(JSON, default=list)
    deny_patterns = Column(JSON, default=list)
    listing_url_pattern = Column(Text)
    dedup_key_spec = Column(String(100), default="canonical_url|vin|external_id", nullable=False)
    extractor = Column(String(50), default="generic", nullable=False)  # generic, pipeline
    exploration_config = Column(JSON, default=dict)  # depth, max_urls, opportunity_threshold, quality_threshold

    # Schedule
    is_active = Column(Boolean, default=True, nullable=False)
    exploration_enabled = Column(Boolean, default=True, nullable=False)
    exploration_frequency = Column(String(20), default="daily", nullable=False)  # hourly, daily, weekly
    scraper_order = Column(Integer)  # 1-24, assigned round-robin
    last_explored_at = Column(DateTime(timezone=True))

    # Relationships
    listings = relationship("Listing", back_populates="dealership")
    scrape_runs = relationship("ScrapeRun", back_populates="dealership")
    discovered_urls = relationship("DiscoveredURL", back_populates="dealership")

    __table_args__ = (
        Index("idx_dealership_exploration", "exploration_enabled", "exploration_frequency"),
        Index("idx_dealership_scraper_order", "scraper_order"),
    )

    def exploration_url(self) -> str | None:
        """Best URL to start exploration from: used-vehicles page, then base URL."""
        return self.used_vehicles_url or self.base_url
