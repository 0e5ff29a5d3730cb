"""Pydantic schemas for Dealership crawl configuration."""

from __future__ import annotations

import re
from typing import Literal
from urllib.parse import urlparse
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from carscout.config import get_settings
from carscout.errors import ConfigurationError

DEDUP_FIELDS = ("canonical_url", "vin", "external_id")

Frequency = Literal["hourly", "daily", "weekly"]
Severity = Literal["high", "medium", "low"]


class ExplorationConfig(BaseModel):
    """AI exploration settings stored per dealership."""

    depth: Literal["shallow", "medium", "deep"] = "shallow"
    max_urls: int = Field(default=20, ge=1)
    opportunity_threshold: Severity = "medium"
    quality_threshold: int = Field(default_factory=lambda: get_settings().quality_threshold, ge=0, le=100)


class CrawlLimits(BaseModel):
    """Circuit breakers for one crawl run."""

    max_pages: int = Field(default_factory=lambda: get_settings().max_pages_per_run, ge=1)
    max_new_items: int = Field(default_factory=lambda: get_settings().max_new_items_per_run, ge=1)


class SourceConfig(BaseModel):
    """Validated view of a Dealership row used by the crawler and pipeline."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID | None = None
    slug: str
    seed_urls: list[str] = Field(min_length=1)
    allow_patterns: list[str] = Field(default_factory=list)
    deny_patterns: list[str] = Field(default_factory=list)
    listing_url_pattern: str
    dedup_key_spec: str = "canonical_url|vin|external_id"
    extractor: str = "generic"
    exploration_config: ExplorationConfig = Field(default_factory=ExplorationConfig)
    exploration_frequency: Frequency = "daily"
    scraper_order: int | None = Field(default=None, ge=1, le=24)
    exploration_enabled: bool = True

    @field_validator("allow_patterns", "deny_patterns")
    @classmethod
    def _patterns_compile(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            _check_regex(pattern)
        return patterns

    @field_validator("listing_url_pattern")
    @classmethod
    def _listing_pattern_compiles(cls, pattern: str) -> str:
        _check_regex(pattern)
        return pattern

    @field_validator("dedup_key_spec")
    @classmethod
    def _dedup_spec_known_fields(cls, spec: str) -> str:
        fields = [f.strip() for f in spec.split("|") if f.strip()]
        if not fields:
            raise ValueError("dedup_key_spec is empty")
        unknown = [f for f in fields if f not in DEDUP_FIELDS]
        if unknown:
            raise ValueError(f"unknown dedup fields: {', '.join(unknown)}")
        return "|".join(fields)

    @property
    def dedup_fields(self) -> list[str]:
        return self.dedup_key_spec.split("|")

    @classmethod
    def from_dealership(cls, dealership) -> "SourceConfig":
        """Build a config from a Dealership row. Raises ConfigurationError if invalid."""
        seeds = list(dealership.seed_urls or [])
        if not seeds and dealership.exploration_url():
            seeds = [dealership.exploration_url()]
        allow = dealership.allow_patterns or [_host_pattern(url) for url in seeds]
        try:
            return cls(
                id=dealership.id,
                slug=dealership.slug,
                seed_urls=seeds,
                allow_patterns=allow,
                deny_patterns=dealership.deny_patterns or [],
                listing_url_pattern=dealership.listing_url_pattern,
                dedup_key_spec=dealership.dedup_key_spec or "canonical_url|vin|external_id",
                extractor=dealership.extractor or "generic",
                exploration_config=ExplorationConfig(**(dealership.exploration_config or {})),
                exploration_frequency=dealership.exploration_frequency or "daily",
                scraper_order=dealership.scraper_order,
                exploration_enabled=dealership.exploration_enabled,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid config for dealership {dealership.slug}: {e}") from e


def _host_pattern(url: str) -> str:
    """Default allow pattern: anything on the seed's own host."""
    host = urlparse(url).netloc
    return rf"^https?://{re.escape(host)}/"


def _check_regex(pattern: str) -> None:
    try:
        re.compile(pattern)
    except re.error as e:
        raise ValueError(f"invalid regex {pattern!r}: {e}") from e
