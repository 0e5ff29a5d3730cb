"""
Tests for candidate ranking and opportunity detection.
"""

from datetime import datetime, timezone

import pytest

from carscout.schemas.opportunity import Opportunity
from carscout.schemas.pipeline import CandidateURL, ExtractedVehicle, MarketInsights, ValidateOutput
from carscout.services.opportunity_ranker import MarketValueIndex, OpportunityRanker

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def vehicle(**overrides):
    fields = {"make": "Toyota", "model": "Corolla", "year": 2020, "price": 18500, "mileage": 90000}
    fields.update(overrides)
    return ExtractedVehicle(**fields)


def validation(estimated_value=None):
    insights = MarketInsights(estimated_value=estimated_value) if estimated_value else None
    return ValidateOutput(
        is_valid=True, completeness=1, precision=1, consistency=1, quality_score=90,
        market_insights=insights,
    )


def kinds(opportunities):
    return {o.kind: o.severity for o in opportunities}


class TestRankCandidates:

    def test_severity_order_keeps_discovery_order_on_ties(self):
        candidates = [
            CandidateURL(url="a", opportunity="low"),
            CandidateURL(url="b", opportunity="high"),
            CandidateURL(url="c", opportunity="medium"),
            CandidateURL(url="d", opportunity="high"),
            CandidateURL(url="e", opportunity="low"),
        ]

        ranked = OpportunityRanker.rank_candidates(candidates)

        assert [c.url for c in ranked] == ["b", "d", "c", "a", "e"]

    @pytest.mark.parametrize("threshold,expected", [
        ("high", ["b"]),
        ("medium", ["b", "c"]),
        ("low", ["a", "b", "c"]),
    ])
    def test_filter_by_threshold(self, threshold, expected):
        candidates = [
            CandidateURL(url="a", opportunity="low"),
            CandidateURL(url="b", opportunity="high"),
            CandidateURL(url="c", opportunity="medium"),
        ]
        assert [c.url for c in OpportunityRanker.filter_by_threshold(candidates, threshold)] == expected

    def test_rank_opportunities_by_severity_then_confidence(self):
        items = [
            Opportunity(kind="promotional_price", severity="low", confidence=0.65),
            Opportunity(kind="premium_features", severity="high", confidence=0.70),
            Opportunity(kind="below_market", severity="high", confidence=0.85),
        ]
        ranked = OpportunityRanker.rank_opportunities(items)
        assert [o.kind for o in ranked] == ["below_market", "premium_features", "promotional_price"]


class TestDetect:

    def test_below_market_from_validation_insights(self):
        found = OpportunityRanker(now=NOW).detect(vehicle(), validation(estimated_value=26000), listing_url="u")

        below = found[0]
        assert below.kind == "below_market"
        assert below.severity == "high"
        assert below.estimated_savings == 7500
        assert below.listing_url == "u"

    def test_below_market_from_market_index(self):
        index = MarketValueIndex({"toyota-corolla-2020": 20000})
        found = OpportunityRanker(market_index=index, now=NOW).detect(vehicle())
        assert kinds(found) == {"below_market": "low"}

    def test_price_near_market_is_not_an_opportunity(self):
        index = MarketValueIndex({"toyota-corolla-2020": 19000})
        assert OpportunityRanker(market_index=index, now=NOW).detect(vehicle()) == []

    @pytest.mark.parametrize("mileage,severity", [(30000, "high"), (50000, "medium"), (60000, None)])
    def test_low_mileage(self, mileage, severity):
        found = kinds(OpportunityRanker(now=NOW).detect(vehicle(mileage=mileage)))
        assert found.get("low_mileage") == severity

    def test_premium_features(self):
        many = ["Leather seats", "Navigation", "Backup camera", "Sunroof", "Heated seats"]
        few = ["Leather", "Sunroof", "GPS"]
        assert kinds(OpportunityRanker(now=NOW).detect(vehicle(features=many)))["premium_features"] == "high"
        assert kinds(OpportunityRanker(now=NOW).detect(vehicle(features=few)))["premium_features"] == "medium"

    def test_promotional_wording(self):
        found = OpportunityRanker(now=NOW).detect(vehicle(description="Clearance event, special offer"))
        assert kinds(found) == {"promotional_price": "low"}

    def test_unknown_fields_detect_nothing(self):
        assert OpportunityRanker(now=NOW).detect(ExtractedVehicle(is_placeholder=True)) == []
