"""Scrape run model: audit log per dealership run."""

from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from carscout.models.base import Base, UUIDMixin


class ScrapeRun(UUIDMixin, Base):
    __tablename__ = "scrape_runs"

    dealership_id = Column(Uuid, ForeignKey("dealerships.id"), nullable=False, index=True)

    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True))
    status = Column(String(20), nullable=False, default="running")  # running, success, failed

    # RunStats counters
    pages_fetched = Column(Integer, default=0)
    items_found = Column(Integer, default=0)
    upserts = Column(Integer, default=0)
    duplicates = Column(Integer, default=0)
    errors = Column(Integer, default=0)
    validation_failures = Column(Integer, default=0)

    # Exploration outcome
    listings_saved = Column(Integer, default=0)
    opportunities_found = Column(Integer, default=0)

    error_message = Column(Text)

    dealership = relationship("Dealership", back_populates="scrape_runs")
