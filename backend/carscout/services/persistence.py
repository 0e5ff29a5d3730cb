"""Idempotent listing store keyed by dedup key."""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from carscout.models.listing import Listing
from carscout.schemas.listing import ListingSchema
from carscout.services.dedup import content_hash

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "price", "currency", "year", "make", "model", "trim", "mileage", "location",
    "photos", "vin", "external_id", "canonical_url", "posted_at",
)


class UpsertOutcome(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DUPLICATE = "duplicate"


@dataclass
class UpsertResult:
    outcome: UpsertOutcome
    listing_id: uuid.UUID | None = None

    @property
    def persisted(self) -> bool:
        return self.outcome in (UpsertOutcome.CREATED, UpsertOutcome.UPDATED)


class ListingGateway:
    """Upserts validated listings. Safe to call again with the same input."""

    def __init__(self, db):
        self.db = db

    def find_by_dedup_key(self, dedup_key: str) -> Listing | None:
        return self.db.query(Listing).filter(Listing.dedup_key == dedup_key).first()

    def upsert(
        self,
        listing: ListingSchema,
        dedup_key: str,
        dealership_id: uuid.UUID | None = None,
        quality_score: int | None = None,
    ) -> UpsertResult:
        """Save or update a listing. Returns created, updated or duplicate."""
        now = datetime.now(timezone.utc)
        digest = content_hash(listing)

        existing = self.find_by_dedup_key(dedup_key)
        if existing is None:
            row = Listing(
                id=uuid.uuid4(),
                dealership_id=dealership_id,
                dedup_key=dedup_key,
                content_hash=digest,
                **{key: getattr(listing, key) for key in UPDATABLE_FIELDS},
                scraped_at=listing.scraped_at,
                raw_snapshot=listing.raw_snapshot,
                quality_score=quality_score,
                first_seen_at=now,
                last_seen_at=now,
                is_active=True,
            )
            self.db.add(row)
            try:
                self.db.commit()
            except IntegrityError:
                # Another writer inserted the same key first
                self.db.rollback()
                existing = self.find_by_dedup_key(dedup_key)
                if existing is None:
                    raise
                return self._merge(existing, listing, dedup_key, digest, now, quality_score)
            return UpsertResult(UpsertOutcome.CREATED, row.id)

        return self._merge(existing, listing, dedup_key, digest, now, quality_score)

    def _merge(self, existing: Listing, listing: ListingSchema, dedup_key: str,
               digest: str, now: datetime, quality_score: int | None) -> UpsertResult:
        if self._identity_conflict(existing, listing, dedup_key):
            logger.warning(
                f"Dedup key {dedup_key} already belongs to {existing.make} {existing.model}; "
                f"not overwriting with {listing.make} {listing.model}"
            )
            return UpsertResult(UpsertOutcome.DUPLICATE, existing.id)

        existing.last_seen_at = now
        existing.is_active = True

        if existing.content_hash == digest:
            self.db.commit()
            return UpsertResult(UpsertOutcome.DUPLICATE, existing.id)

        for key in UPDATABLE_FIELDS:
            setattr(existing, key, getattr(listing, key))
        existing.content_hash = digest
        existing.scraped_at = listing.scraped_at
        existing.raw_snapshot = listing.raw_snapshot
        if quality_score is not None:
            existing.quality_score = quality_score
        self.db.commit()
        return UpsertResult(UpsertOutcome.UPDATED, existing.id)

    @staticmethod
    def _identity_conflict(existing: Listing, listing: ListingSchema, dedup_key: str) -> bool:
        """A VIN or external id now describing a different make/model is a different vehicle."""
        if dedup_key.startswith("canonical_url:"):
            return False
        return (
            existing.make.strip().lower() != listing.make.strip().lower()
            or existing.model.strip().lower() != listing.model.strip().lower()
        )
