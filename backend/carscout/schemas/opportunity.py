"""Pydantic schema for detected opportunities (ephemeral, recomputed per run)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

OpportunityKind = Literal["below_market", "low_mileage", "premium_features", "promotional_price"]


class Opportunity(BaseModel):
    kind: OpportunityKind
    severity: Literal["high", "medium", "low"]
    confidence: float = Field(ge=0, le=1)
    reasons: list[str] = Field(default_factory=list)
    estimated_market_value: float | None = None
    estimated_savings: float | None = None
    price_variation: bool = False
    listing_url: str | None = None
