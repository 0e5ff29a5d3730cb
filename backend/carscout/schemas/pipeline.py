"""Pydantic schemas for the four content-intelligence stage outputs.

Each stage must return a JSON object matching one of these models. Anything
that fails to parse is treated as a stage failure by the pipeline.
"""

from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from carscout.services.normalization import clamp_year, parse_number, parse_price


def _finite(value):
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("must be a finite number")
    return value


class CandidateURL(BaseModel):
    """A listing URL proposed by the Explore stage."""

    url: str
    opportunity: Literal["high", "medium", "low"] = "low"
    reason: str | None = None
    title: str | None = None
    price: str | None = None


class ExploreOutput(BaseModel):
    candidates: list[CandidateURL] = Field(default_factory=list)
    pagination_urls: list[str] = Field(default_factory=list)
    filter_urls: list[str] = Field(default_factory=list)
    site_structure: str | None = None
    confidence: float = Field(ge=0, le=1)


class AnalyzeOutput(BaseModel):
    selectors: dict[str, str] = Field(default_factory=dict)
    extraction_method: Literal["dom", "api", "text", "ocr"] = "dom"
    confidence: float = Field(ge=0, le=1)
    challenges: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    def strategy_hint(self) -> dict[str, Any]:
        """Strategy passed to the Extract stage."""
        return {"selectors": self.selectors, "method": self.extraction_method}


class ExtractedVehicle(BaseModel):
    """Normalized vehicle fields. Unknown values stay None, never guessed."""

    make: str | None = None
    model: str | None = None
    year: int | None = None
    price: float | None = None
    currency: str | None = None
    mileage: int | None = None
    trim: str | None = None
    condition: str | None = None
    features: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    description: str | None = None
    location: str | None = None
    vin: str | None = None
    external_id: str | None = None
    is_placeholder: bool = False

    @field_validator("price", mode="before")
    @classmethod
    def _normalize_price(cls, value):
        return parse_price(_finite(value))

    @field_validator("mileage", mode="before")
    @classmethod
    def _normalize_mileage(cls, value):
        number = parse_number(_finite(value))
        return int(number) if number is not None else None

    @field_validator("year", mode="before")
    @classmethod
    def _normalize_year(cls, value):
        number = parse_number(_finite(value))
        return clamp_year(int(number)) if number is not None else None

    def to_listing_fields(self, url: str) -> dict[str, Any]:
        """Map to ListingSchema input; None values are left for the schema to reject."""
        return {
            "price": self.price,
            "currency": self.currency or "USD",
            "year": self.year,
            "make": self.make,
            "model": self.model,
            "trim": self.trim,
            "mileage": self.mileage,
            "location": self.location,
            "photos": self.images,
            "canonical_url": url,
            "vin": self.vin,
            "external_id": self.external_id,
            "raw_snapshot": self.model_dump(mode="json"),
        }


class MarketInsights(BaseModel):
    estimated_value: float | None = None
    price_range: str | None = None


class ValidateOutput(BaseModel):
    is_valid: bool
    completeness: float = Field(ge=0, le=1)
    precision: float = Field(ge=0, le=1)
    consistency: float = Field(ge=0, le=1)
    quality_score: int = Field(ge=0, le=100)
    issues: list[str] = Field(default_factory=list)
    is_duplicate: bool = False
    recommendations: list[str] = Field(default_factory=list)
    market_insights: MarketInsights | None = None
