"""Run statistics and pydantic schemas for ScrapeRun model."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, ConfigDict


@dataclass
class RunStats:
    """Exact counters for one crawl run. Owned by a single run instance."""

    pages: int = 0
    found: int = 0
    upserts: int = 0
    duplicates: int = 0
    errors: int = 0
    validation_failures: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    def finalize(self) -> "RunStats":
        if self.finished_at is None:
            self.finished_at = datetime.now(timezone.utc)
        return self

    @property
    def duration_ms(self) -> int | None:
        if self.finished_at is None:
            return None
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def counters(self) -> dict[str, int]:
        data = asdict(self)
        data.pop("started_at")
        data.pop("finished_at")
        return data


class ScrapeRunRead(BaseModel):
    """Full scrape run output."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    dealership_id: UUID
    started_at: datetime
    finished_at: datetime | None = None
    status: str
    pages_fetched: int = 0
    items_found: int = 0
    upserts: int = 0
    duplicates: int = 0
    errors: int = 0
    validation_failures: int = 0
    listings_saved: int = 0
    opportunities_found: int = 0
    error_message: str | None = None
