"""Listing model: core vehicle listing table."""

from sqlalchemy import Column, String, Float, Boolean, DateTime, Text, ForeignKey, Index, Integer, JSON, Uuid
from sqlalchemy.orm import relationship

from carscout.models.base import Base, TimestampMixin, UUIDMixin


class Listing(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "listings"

    dealership_id = Column(Uuid, ForeignKey("dealerships.id"), index=True)

    # Dedup
    dedup_key = Column(String(512), unique=True, nullable=False, index=True)
    content_hash = Column(String(64), index=True)

    # Vehicle
    price = Column(Float, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    year = Column(Integer, nullable=False, index=True)
    make = Column(String(100), nullable=False, index=True)
    model = Column(String(100), nullable=False)
    trim = Column(String(255))
    mileage = Column(Integer)
    location = Column(String(255))
    photos = Column(JSON, default=list)

    # Identity
    vin = Column(String(32), index=True)
    external_id = Column(String(255))
    canonical_url = Column(Text, nullable=False)

    # Provenance
    posted_at = Column(DateTime(timezone=True))
    scraped_at = Column(DateTime(timezone=True), nullable=False)
    raw_snapshot = Column(JSON)
    quality_score = Column(Integer)

    # Lifecycle
    first_seen_at = Column(DateTime(timezone=True), nullable=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    dealership = relationship("Dealership", back_populates="listings")

    __table_args__ = (
        Index("idx_listing_make_model_year", "make", "model", "year"),
        Index("idx_listing_active_seen", "is_active", "last_seen_at"),
    )
