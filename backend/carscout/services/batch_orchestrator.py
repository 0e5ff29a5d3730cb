"""Batch execution of the extraction pipeline over a prioritized URL list.

URLs are split into fixed-size batches. Items in a batch run concurrently
under the semaphore, each retried with linear backoff on fetch or stage
failure. Item-level failures end up in the per-item results; only
configuration errors propagate.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field

from pydantic import ValidationError

from carscout.config import get_settings
from carscout.errors import CarScoutError, ConfigurationError, ExtractionStageError, FetchError
from carscout.schemas.listing import ListingSchema
from carscout.scrapers.politeness import ConcurrencySemaphore
from carscout.services.dedup import build_dedup_key
from carscout.services.extraction_pipeline import PipelineResult

logger = logging.getLogger(__name__)

SKIP_BELOW_THRESHOLD = "below_quality_threshold"
SKIP_INVALID = "invalid"
SKIP_SCHEMA = "schema_validation_failed"


@dataclass
class ItemResult:
    url: str
    status: str  # saved, skipped, error
    listing_id: uuid.UUID | None = None
    outcome: str | None = None
    quality_score: int | None = None
    skip_reason: str | None = None
    error: str | None = None
    attempts: int = 0
    pipeline: PipelineResult | None = None

    @property
    def success(self) -> bool:
        return self.status == "saved"


@dataclass
class BatchResult:
    total_processed: int = 0
    total_saved: int = 0
    total_skipped: int = 0
    total_errors: int = 0
    processing_time_ms: int = 0
    items: list[ItemResult] = field(default_factory=list)

    def add(self, item: ItemResult) -> None:
        self.items.append(item)
        self.total_processed += 1
        if item.status == "saved":
            self.total_saved += 1
        elif item.status == "skipped":
            self.total_skipped += 1
        else:
            self.total_errors += 1


class BatchOrchestrator:

    def __init__(
        self,
        fetcher,
        pipeline,
        gateway,
        semaphore: ConcurrencySemaphore | None = None,
        tracker=None,
        settings=None,
        sleep=asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.fetcher = fetcher
        self.pipeline = pipeline
        self.gateway = gateway
        self.semaphore = semaphore or ConcurrencySemaphore(self.settings.crawl_concurrency)
        self.tracker = tracker
        self._sleep = sleep

    async def process_batch(
        self,
        urls: list[str],
        quality_threshold: int | None = None,
        dealership_id: uuid.UUID | None = None,
        dedup_fields: list[str] | None = None,
    ) -> BatchResult:
        self._check_config()
        threshold = self.settings.quality_threshold if quality_threshold is None else quality_threshold
        dedup_fields = dedup_fields or ["canonical_url", "vin", "external_id"]
        batch_size = self.settings.batch_size
        start = time.monotonic()
        result = BatchResult()

        batches = [urls[i:i + batch_size] for i in range(0, len(urls), batch_size)]
        for index, batch in enumerate(batches, start=1):
            logger.info(f"Processing batch {index}/{len(batches)} ({len(batch)} URLs)")
            items = await asyncio.gather(*(
                self.semaphore.acquire(
                    lambda url=url: self._process_item(url, threshold, dealership_id, dedup_fields)
                )
                for url in batch
            ))
            for item in items:
                result.add(item)
            if index < len(batches):
                await self._sleep(self.settings.inter_batch_delay_ms / 1000)

        result.processing_time_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"Batch run complete: {result.total_saved} saved, {result.total_skipped} skipped, "
            f"{result.total_errors} errors in {result.processing_time_ms}ms"
        )
        return result

    def _check_config(self) -> None:
        s = self.settings
        if s.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {s.batch_size}")
        if s.retry_attempts < 1:
            raise ConfigurationError(f"retry_attempts must be >= 1, got {s.retry_attempts}")
        if s.retry_backoff_ms < 0 or s.inter_batch_delay_ms < 0:
            raise ConfigurationError("Delays must not be negative")

    async def _process_item(self, url, threshold, dealership_id, dedup_fields) -> ItemResult:
        if self.tracker:
            self.tracker.mark_processing(url)

        max_attempts = self.settings.retry_attempts
        last_error = None
        last_pipeline = None
        for attempt in range(1, max_attempts + 1):
            try:
                item = await self._attempt(url, threshold, dealership_id, dedup_fields)
            except (FetchError, ExtractionStageError) as e:
                last_error = str(e)
                last_pipeline = getattr(e, "result", None)
                if attempt < max_attempts:
                    backoff = self.settings.retry_backoff_ms * attempt
                    logger.warning(f"Attempt {attempt}/{max_attempts} failed for {url}: {e}; retrying in {backoff}ms")
                    await self._sleep(backoff / 1000)
                continue
            except ConfigurationError:
                raise
            except CarScoutError as e:
                last_error = str(e)
                break
            except Exception as e:
                logger.exception(f"Unexpected error processing {url}")
                last_error = f"{type(e).__name__}: {e}"
                break
            item.attempts = attempt
            if self.tracker:
                self.tracker.mark_processed(url, vehicles_extracted=1 if item.success else 0)
            return item

        logger.warning(f"Giving up on {url}: {last_error}")
        if self.tracker:
            self.tracker.mark_failed(url, last_error or "unknown error")
        return ItemResult(url=url, status="error", error=last_error, attempts=attempt, pipeline=last_pipeline)

    async def _attempt(self, url, threshold, dealership_id, dedup_fields) -> ItemResult:
        page = await self.fetcher.fetch(url)
        page.raise_for_failure()

        result = await self.pipeline.run_pipeline(url, page.content)
        if not result.ok:
            raise ExtractionStageError(result.failed_stage, result.error or "failed", result=result)

        validation = result.validation
        skipped = ItemResult(url=url, status="skipped", quality_score=validation.quality_score, pipeline=result)
        if not validation.is_valid:
            skipped.skip_reason = SKIP_INVALID
            return skipped
        if not self.pipeline.passes_quality_gate(result, threshold):
            skipped.skip_reason = SKIP_BELOW_THRESHOLD
            return skipped

        try:
            listing = ListingSchema(**result.extracted.to_listing_fields(url))
        except ValidationError as e:
            skipped.skip_reason = SKIP_SCHEMA
            skipped.error = f"{e.error_count()} schema error(s)"
            return skipped
        dedup_key = build_dedup_key(listing, dedup_fields)
        if dedup_key is None:
            skipped.skip_reason = SKIP_SCHEMA
            skipped.error = "no dedup key fields present"
            return skipped

        upsert = self.gateway.upsert(
            listing, dedup_key, dealership_id=dealership_id, quality_score=validation.quality_score
        )
        return ItemResult(
            url=url,
            status="saved",
            listing_id=upsert.listing_id,
            outcome=upsert.outcome.value,
            quality_score=validation.quality_score,
            pipeline=result,
        )
