"""AI-driven exploration of one dealership site.

fetch base page -> Explore stage -> record discovered URLs -> URL policy ->
rank candidates -> cap at max_urls -> batch processing -> opportunity
detection on saved items -> filter by the dealership's opportunity threshold.
"""

import logging
import time
from dataclasses import dataclass, field
from urllib.parse import urljoin

from carscout.config import get_settings
from carscout.schemas.dealership import SourceConfig
from carscout.schemas.opportunity import Opportunity
from carscout.scrapers.url_policy import URLPolicy
from carscout.services.opportunity_ranker import OpportunityRanker

logger = logging.getLogger(__name__)


@dataclass
class ExplorationResult:
    discovered: int = 0
    processed: int = 0
    saved: int = 0
    opportunities: list[Opportunity] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    processing_time_ms: int = 0


class ExplorationRunner:

    def __init__(self, fetcher, pipeline, orchestrator, ranker: OpportunityRanker | None = None,
                 tracker=None, settings=None):
        self.settings = settings or get_settings()
        self.fetcher = fetcher
        self.pipeline = pipeline
        self.orchestrator = orchestrator
        self.ranker = ranker or OpportunityRanker()
        self.tracker = tracker

    async def explore(self, source: SourceConfig, base_url: str | None = None) -> ExplorationResult:
        start = time.monotonic()
        config = source.exploration_config
        base_url = base_url or source.seed_urls[0]
        result = ExplorationResult()

        try:
            page = await self.fetcher.fetch(base_url, user_agent=self.settings.user_agent)
            if not page.ok:
                result.errors.append(f"Failed to fetch {base_url}: {page.error}")
                return result

            stage = await self.pipeline.explore_site(base_url, page.content, config.depth)
            if not stage.ok:
                result.errors.append(stage.error)
                return result
            exploration = stage.data

            candidates = []
            seen: set[str] = set()
            for candidate in exploration.candidates:
                url = urljoin(base_url, candidate.url)
                if url in seen:
                    continue
                seen.add(url)
                candidates.append(candidate.model_copy(update={"url": url}))
            result.discovered = len(candidates)
            self._record(source, base_url, candidates, exploration)

            allowed = [
                c for c in candidates
                if URLPolicy.is_allowed(c.url, source.allow_patterns, source.deny_patterns)
                and (self.tracker is None or self.tracker.is_processable(c.url))
            ]
            selected = self.ranker.rank_candidates(allowed)[:config.max_urls]
            logger.info(
                f"[{source.slug}] Explore found {len(candidates)} candidates, "
                f"{len(allowed)} allowed, processing {len(selected)}"
            )
            if not selected:
                return result

            batch = await self.orchestrator.process_batch(
                [c.url for c in selected],
                quality_threshold=config.quality_threshold,
                dealership_id=source.id,
                dedup_fields=source.dedup_fields,
            )
            result.processed = batch.total_processed
            result.saved = batch.total_saved

            opportunities: list[Opportunity] = []
            for item in batch.items:
                if item.error:
                    result.errors.append(f"{item.url}: {item.error}")
                if item.success and item.pipeline is not None:
                    opportunities.extend(
                        self.ranker.detect(item.pipeline.extracted, item.pipeline.validation, listing_url=item.url)
                    )
            result.opportunities = self.ranker.rank_opportunities(
                self.ranker.filter_by_threshold(opportunities, config.opportunity_threshold)
            )
            return result
        finally:
            result.processing_time_ms = int((time.monotonic() - start) * 1000)
            logger.info(
                f"[{source.slug}] Exploration done: {result.saved} saved, "
                f"{len(result.opportunities)} opportunities, {len(result.errors)} errors"
            )

    def _record(self, source: SourceConfig, base_url: str, candidates, exploration) -> None:
        if self.tracker is None:
            return
        for candidate in candidates:
            self.tracker.record_discovered(
                candidate.url, "listing", source.id, base_url, discovery_method="ai_explore"
            )
        for url_type, urls in (("pagination", exploration.pagination_urls), ("filter", exploration.filter_urls)):
            for url in urls:
                self.tracker.record_discovered(
                    urljoin(base_url, url), url_type, source.id, base_url, discovery_method="ai_explore"
                )
