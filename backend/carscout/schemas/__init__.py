"""Pydantic schemas package."""

from carscout.schemas.dealership import (
    CrawlLimits,
    ExplorationConfig,
    SourceConfig,
)
from carscout.schemas.listing import ListingSchema
from carscout.schemas.opportunity import Opportunity
from carscout.schemas.pipeline import (
    AnalyzeOutput,
    CandidateURL,
    ExploreOutput,
    ExtractedVehicle,
    MarketInsights,
    ValidateOutput,
)
from carscout.schemas.scrape_run import RunStats, ScrapeRunRead

__all__ = [
    # Dealership
    "CrawlLimits",
    "ExplorationConfig",
    "SourceConfig",
    # Listing
    "ListingSchema",
    # Opportunity
    "Opportunity",
    # Pipeline stages
    "AnalyzeOutput",
    "CandidateURL",
    "ExploreOutput",
    "ExtractedVehicle",
    "MarketInsights",
    "ValidateOutput",
    # ScrapeRun
    "RunStats",
    "ScrapeRunRead",
]
