"""Discovered URL model: per-URL processing lifecycle.

Status moves discovered -> processing -> processed | failed. A failed URL
becomes deprecated (terminal, inactive) once its consecutive failures reach
the configured threshold or its expiry passes.
"""

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from carscout.models.base import Base, TimestampMixin, UUIDMixin

URL_STATUSES = ("discovered", "processing", "processed", "failed", "deprecated")
URL_TYPES = ("listing", "pagination", "filter")


class DiscoveredURL(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "discovered_urls"

    url = Column(Text, unique=True, nullable=False)
    dealership_id = Column(Uuid, ForeignKey("dealerships.id"), index=True)
    url_type = Column(String(50), nullable=False)  # listing, pagination, filter

    # Discovery
    parent_url = Column(Text)
    discovery_method = Column(String(50))  # html_parsing, ai_explore, seed

    # Processing
    status = Column(String(50), nullable=False, default="discovered", index=True)
    processing_attempts = Column(Integer, default=0, nullable=False)
    consecutive_failures = Column(Integer, default=0, nullable=False)
    vehicles_extracted = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)
    last_processed_at = Column(DateTime(timezone=True))
    last_successful_extraction = Column(DateTime(timezone=True))

    # Lifecycle
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    deprecated_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True))

    dealership = relationship("Dealership", back_populates="discovered_urls")

    __table_args__ = (
        Index("idx_discovered_url_type_status", "url_type", "status"),
    )

    def __repr__(self):
        return f"<DiscoveredURL {self.url} status={self.status}>"
