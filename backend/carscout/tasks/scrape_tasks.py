"""Crawl orchestration tasks."""

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from carscout.config import get_settings
from carscout.errors import ConfigurationError
from carscout.tasks.celery_app import celery_app
from carscout.models.base import get_session
from carscout.models.dealership import Dealership
from carscout.models.scrape_run import ScrapeRun
from carscout.schemas.dealership import CrawlLimits, SourceConfig
from carscout.schemas.scrape_run import RunStats, ScrapeRunRead
from carscout.scrapers.fetcher import PageFetcher
from carscout.scrapers.politeness import ConcurrencySemaphore
from carscout.scrapers.registry import build_extractor
from carscout.scrapers.source_crawler import SourceCrawler
from carscout.services.batch_orchestrator import BatchOrchestrator
from carscout.services.content_intelligence import ContentIntelligenceClient
from carscout.services.exploration import ExplorationResult, ExplorationRunner
from carscout.services.extraction_pipeline import ExtractionPipeline
from carscout.services.persistence import ListingGateway
from carscout.services.scheduler import DealershipScheduler
from carscout.services.url_tracker import DiscoveredURLTracker

logger = logging.getLogger(__name__)


@celery_app.task(name="carscout.tasks.scrape_tasks.dispatch_due_dealerships")
def dispatch_due_dealerships():
    """Find dealerships due in the current bucket and dispatch individual crawl tasks."""
    db = get_session()
    try:
        scheduler = DealershipScheduler(db)
        bucket = scheduler.get_current_bucket()
        due = scheduler.get_due_sources(bucket=bucket)

        for dealership in due:
            crawl_dealership.delay(str(dealership.id))

        logger.info(f"Dispatched {len(due)} crawl tasks for bucket {bucket}")
        return {"bucket": bucket, "dispatched": len(due)}
    finally:
        db.close()


@celery_app.task(name="carscout.tasks.scrape_tasks.assign_scraper_orders")
def assign_scraper_orders():
    """Re-balance enabled dealerships over the 24 hourly buckets."""
    db = get_session()
    try:
        count = DealershipScheduler(db).assign_scraper_orders()
        return {"assigned": count}
    finally:
        db.close()


async def _run_source(
    db, source: SourceConfig, stats: RunStats | None = None
) -> tuple[RunStats, ExplorationResult | None]:
    """Crawl every seed, then run AI exploration when the dealership has it enabled."""
    settings = get_settings()
    semaphore = ConcurrencySemaphore(settings.crawl_concurrency)
    gateway = ListingGateway(db)
    tracker = DiscoveredURLTracker(db)

    async with PageFetcher() as fetcher, ContentIntelligenceClient() as client:
        pipeline = ExtractionPipeline(client)
        extractor = build_extractor(source, pipeline=pipeline)
        crawler = SourceCrawler(fetcher, gateway, extractor, semaphore=semaphore, stats=stats, tracker=tracker)
        stats = await crawler.crawl_source(source, CrawlLimits())

        exploration = None
        if source.exploration_enabled:
            orchestrator = BatchOrchestrator(fetcher, pipeline, gateway, semaphore=semaphore, tracker=tracker)
            runner = ExplorationRunner(fetcher, pipeline, orchestrator, tracker=tracker)
            exploration = await runner.explore(source)

    return stats, exploration


def _record_counters(run: ScrapeRun, stats: RunStats) -> None:
    run.pages_fetched = stats.pages
    run.items_found = stats.found
    run.upserts = stats.upserts
    run.duplicates = stats.duplicates
    run.errors = stats.errors
    run.validation_failures = stats.validation_failures


@celery_app.task(name="carscout.tasks.scrape_tasks.crawl_dealership")
def crawl_dealership(dealership_id: str):
    """Crawl a single dealership and record the run."""
    db = get_session()
    try:
        dealership = db.get(Dealership, uuid.UUID(dealership_id))
        if not dealership:
            logger.error(f"Dealership {dealership_id} not found")
            return None

        run = ScrapeRun(
            id=uuid.uuid4(),
            dealership_id=dealership.id,
            started_at=datetime.now(timezone.utc),
            status="running",
        )
        db.add(run)
        db.commit()

        completed = True
        stats = RunStats()
        try:
            source = SourceConfig.from_dealership(dealership)
            stats, exploration = asyncio.run(_run_source(db, source, stats))

            run.status = "success"
            _record_counters(run, stats)
            if exploration is not None:
                run.listings_saved = exploration.saved
                run.opportunities_found = len(exploration.opportunities)
            logger.info(f"[{dealership.slug}] Crawled: {stats.counters()}")

        except ConfigurationError as e:
            # Needs an operator fix; leave last_explored_at alone
            completed = False
            run.status = "failed"
            run.error_message = str(e)[:2000]
            _record_counters(run, stats)
            logger.error(f"[{dealership.slug}] Configuration error: {e}")

        except Exception as e:
            db.rollback()
            run.status = "failed"
            run.error_message = str(e)[:2000]
            _record_counters(run, stats)
            logger.error(f"[{dealership.slug}] Crawl failed: {e}")

        run.finished_at = datetime.now(timezone.utc)
        db.commit()

        if completed:
            DealershipScheduler(db).mark_explored(dealership.id)

        return ScrapeRunRead.model_validate(run).model_dump(mode="json")

    finally:
        db.close()
