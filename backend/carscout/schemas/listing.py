"""Pydantic schemas for Listing model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class ListingSchema(BaseModel):
    """A normalized vehicle listing. Only instances of this persist."""

    model_config = ConfigDict(str_strip_whitespace=True)

    price: float = Field(gt=0)
    currency: str = "USD"
    year: int
    make: str = Field(min_length=1)
    model: str = Field(min_length=1)
    trim: str | None = None
    mileage: int | None = Field(default=None, ge=0)
    location: str | None = None
    photos: list[str] = Field(default_factory=list)
    posted_at: datetime | None = None
    scraped_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    canonical_url: str
    vin: str | None = None
    external_id: str | None = None
    raw_snapshot: dict[str, Any] | None = None

    @field_validator("year")
    @classmethod
    def _year_in_range(cls, value: int) -> int:
        max_year = datetime.now(timezone.utc).year + 1
        if not 1900 <= value <= max_year:
            raise ValueError(f"year must be between 1900 and {max_year}")
        return value

    @field_validator("canonical_url")
    @classmethod
    def _canonical_url_is_http(cls, value: str) -> str:
        if not _is_http_url(value):
            raise ValueError("canonical_url must be an absolute http(s) URL")
        return value

    @field_validator("photos")
    @classmethod
    def _photos_are_urls(cls, value: list[str]) -> list[str]:
        for photo in value:
            if not _is_http_url(photo):
                raise ValueError(f"invalid photo URL: {photo}")
        return value

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        return value.upper()

    @field_validator("vin")
    @classmethod
    def _vin_upper(cls, value: str | None) -> str | None:
        return value.upper() if value else None

    def business_fields(self) -> dict[str, Any]:
        """Fields that identify a change worth an update (excludes timestamps/snapshot)."""
        return self.model_dump(exclude={"scraped_at", "raw_snapshot"}, mode="json")
