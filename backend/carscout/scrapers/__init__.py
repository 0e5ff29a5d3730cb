"""Scraper package: import extractors to trigger @register_extractor decorators."""

from carscout.scrapers.extractors import GenericHtmlExtractor, PipelineListingExtractor  # noqa: F401
