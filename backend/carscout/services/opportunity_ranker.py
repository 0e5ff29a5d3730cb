"""Opportunity ranking: orders exploration candidates and scores extracted vehicles.

Detection rules:
    below_market      price >= 25% under market value -> high, >= 15% -> medium, >= 5% -> low
    low_mileage       mileage < 50% of expected (15,000 km/year) -> high, < 70% -> medium
    premium_features  >= 5 premium features -> high, >= 3 -> medium
    promotional_price promotional wording in the description -> low
"""

import logging
from datetime import datetime, timezone

from carscout.schemas.opportunity import Opportunity
from carscout.schemas.pipeline import CandidateURL, ExtractedVehicle, ValidateOutput

logger = logging.getLogger(__name__)

SEVERITY_RANK = {"high": 3, "medium": 2, "low": 1}

EXPECTED_KM_PER_YEAR = 15000

PREMIUM_FEATURES = (
    "leather", "cuero", "navigation", "navegación", "gps", "camera", "cámara",
    "sunroof", "quemacocos", "panoramic", "sensor", "turbo", "premium", "bose",
    "harman", "xenon", "xenón", "led", "adaptive", "adaptativo", "heated seats",
    "parking assist", "keyless",
)

PROMOTIONAL_WORDS = (
    "oferta", "descuento", "liquidación", "remate", "promoción", "precio especial",
    "special offer", "discount", "clearance", "sale price", "reduced",
)


class MarketValueIndex:
    """Market averages keyed 'make-model-year' (lower-case)."""

    def __init__(self, values: dict[str, float] | None = None):
        self._values: dict[str, float] = {}
        self.update(values or {})

    @staticmethod
    def key(make: str, model: str, year: int) -> str:
        return f"{make.strip().lower()}-{model.strip().lower()}-{year}".replace(" ", "-")

    def update(self, values: dict[str, float]) -> None:
        for key, value in values.items():
            self._values[key.lower()] = value

    def lookup(self, make: str | None, model: str | None, year: int | None) -> float | None:
        if not (make and model and year):
            return None
        return self._values.get(self.key(make, model, year))


class OpportunityRanker:

    def __init__(self, market_index: MarketValueIndex | None = None, now: datetime | None = None):
        self.market_index = market_index or MarketValueIndex()
        self._now = now

    @staticmethod
    def rank_candidates(candidates: list[CandidateURL]) -> list[CandidateURL]:
        """Stable sort by severity: high, medium, low. Ties keep discovery order."""
        return sorted(candidates, key=lambda c: -SEVERITY_RANK[c.opportunity])

    @staticmethod
    def rank_opportunities(opportunities: list[Opportunity]) -> list[Opportunity]:
        return sorted(opportunities, key=lambda o: (-SEVERITY_RANK[o.severity], -o.confidence))

    @staticmethod
    def filter_by_threshold(items: list, threshold: str) -> list:
        """'high' keeps high only, 'medium' keeps high+medium, 'low' keeps everything.

        Works on both candidates (`opportunity`) and opportunities (`severity`).
        """
        minimum = SEVERITY_RANK[threshold]
        return [
            item for item in items
            if SEVERITY_RANK[getattr(item, "severity", None) or item.opportunity] >= minimum
        ]

    def detect(
        self,
        vehicle: ExtractedVehicle,
        validation: ValidateOutput | None = None,
        listing_url: str | None = None,
    ) -> list[Opportunity]:
        """Recompute opportunities from validated fields, most severe first."""
        found: list[Opportunity] = []
        for detector in (self._below_market, self._low_mileage, self._premium_features, self._promotional):
            opportunity = detector(vehicle, validation)
            if opportunity:
                opportunity.listing_url = listing_url
                found.append(opportunity)
        return self.rank_opportunities(found)

    def _market_value(self, vehicle: ExtractedVehicle, validation: ValidateOutput | None) -> float | None:
        if validation and validation.market_insights and validation.market_insights.estimated_value:
            return validation.market_insights.estimated_value
        return self.market_index.lookup(vehicle.make, vehicle.model, vehicle.year)

    def _below_market(self, vehicle, validation) -> Opportunity | None:
        market_value = self._market_value(vehicle, validation)
        if not vehicle.price or not market_value:
            return None
        savings = market_value - vehicle.price
        pct_below = savings / market_value
        if pct_below >= 0.25:
            severity = "high"
        elif pct_below >= 0.15:
            severity = "medium"
        elif pct_below >= 0.05:
            severity = "low"
        else:
            return None
        return Opportunity(
            kind="below_market",
            severity=severity,
            confidence=0.85,
            reasons=[f"Price {pct_below:.1%} below estimated market value of {market_value:,.0f}"],
            estimated_market_value=market_value,
            estimated_savings=savings,
            price_variation=True,
        )

    def _low_mileage(self, vehicle, validation) -> Opportunity | None:
        if vehicle.mileage is None or not vehicle.year:
            return None
        now = self._now or datetime.now(timezone.utc)
        age = max(now.year - vehicle.year, 1)
        expected = age * EXPECTED_KM_PER_YEAR
        if vehicle.mileage >= expected * 0.7:
            return None
        return Opportunity(
            kind="low_mileage",
            severity="high" if vehicle.mileage < expected * 0.5 else "medium",
            confidence=0.80,
            reasons=[f"{vehicle.mileage:,} km vs {expected:,} km expected for a {age}-year-old vehicle"],
        )

    def _premium_features(self, vehicle, validation) -> Opportunity | None:
        text = " ".join(vehicle.features).lower()
        matched = [feature for feature in PREMIUM_FEATURES if feature in text]
        if len(matched) < 3:
            return None
        return Opportunity(
            kind="premium_features",
            severity="high" if len(matched) >= 5 else "medium",
            confidence=0.70,
            reasons=[f"Premium features: {', '.join(matched)}"],
        )

    def _promotional(self, vehicle, validation) -> Opportunity | None:
        description = (vehicle.description or "").lower()
        matched = [word for word in PROMOTIONAL_WORDS if word in description]
        if not matched:
            return None
        return Opportunity(
            kind="promotional_price",
            severity="low",
            confidence=0.65,
            reasons=[f"Promotional wording: {', '.join(matched)}"],
            price_variation=True,
        )
