"""Per-source pagination crawler.

For every seed URL the crawler walks listing pages one at a time: fetch the
page, pull out listing links that match the source's listing pattern and
URL policy, extract/validate/dedup/persist each listing, then follow the
link to page N+1. A seed's loop stops at the page or item cap, when no
next page exists, or when a page fetch fails.
"""

import asyncio
import logging
import re
from urllib.parse import parse_qs, urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup
from pydantic import ValidationError

from carscout.config import get_settings
from carscout.errors import CarScoutError, ConfigurationError, ListingValidationError
from carscout.schemas.dealership import CrawlLimits, SourceConfig
from carscout.schemas.listing import ListingSchema
from carscout.schemas.scrape_run import RunStats
from carscout.scrapers.politeness import ConcurrencySemaphore, RateLimiter
from carscout.scrapers.url_policy import URLPolicy, compile_pattern
from carscout.services.dedup import build_dedup_key
from carscout.services.persistence import UpsertOutcome

logger = logging.getLogger(__name__)

PAGE_PARAMS = ("page", "p")
PAGE_PATH_RE = re.compile(r"/page/(\d+)/?$")
SKIP_HREF_PREFIXES = ("mailto:", "tel:", "javascript:")


def extract_listing_urls(content: str, page_url: str, source: SourceConfig) -> list[str]:
    """Absolute listing URLs on a page, in document order, without duplicates."""
    soup = BeautifulSoup(content, "lxml")
    listing_pattern = compile_pattern(source.listing_url_pattern)
    page_url = urldefrag(page_url).url

    urls: list[str] = []
    seen: set[str] = set()
    for link in soup.find_all("a", href=True):
        href = link["href"].strip()
        if not href or href.startswith("#") or href.lower().startswith(SKIP_HREF_PREFIXES):
            continue
        url = urldefrag(urljoin(page_url, href)).url
        if urlparse(url).scheme not in ("http", "https"):
            continue
        if url == page_url or url in seen:
            continue
        if not listing_pattern.search(url):
            continue
        if not URLPolicy.is_allowed(url, source.allow_patterns, source.deny_patterns):
            continue
        seen.add(url)
        urls.append(url)
    return urls


def page_number_of(url: str) -> int | None:
    """Page number carried by a `page=`/`p=` parameter or a `/page/N` path segment."""
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    for param in PAGE_PARAMS:
        values = query.get(param)
        if values and values[0].isdigit():
            return int(values[0])
    match = PAGE_PATH_RE.search(parsed.path)
    return int(match.group(1)) if match else None


def find_next_page_url(content: str, page_url: str, current_page: int) -> str | None:
    """The first same-host link whose page number is exactly current_page + 1."""
    soup = BeautifulSoup(content, "lxml")
    host = urlparse(page_url).netloc
    # rel="next" links are checked first but must still carry the right number
    links = soup.select("a[rel~=next][href], link[rel~=next][href]") + soup.find_all("a", href=True)
    for link in links:
        url = urldefrag(urljoin(page_url, link["href"])).url
        if urlparse(url).netloc != host:
            continue
        if page_number_of(url) == current_page + 1:
            return url
    return None


class SourceCrawler:
    """Crawls one source. Owns the RunStats of exactly one run."""

    def __init__(
        self,
        fetcher,
        gateway,
        extractor,
        rate_limiter: RateLimiter | None = None,
        semaphore: ConcurrencySemaphore | None = None,
        stats: RunStats | None = None,
        tracker=None,
        settings=None,
    ):
        self.settings = settings or get_settings()
        self.fetcher = fetcher
        self.gateway = gateway
        self.extractor = extractor
        self.rate_limiter = rate_limiter or RateLimiter(
            self.settings.rate_limit_min_delay_ms, self.settings.rate_limit_max_delay_ms
        )
        self.semaphore = semaphore or ConcurrencySemaphore(self.settings.crawl_concurrency)
        self.stats = stats or RunStats()
        self.tracker = tracker

    async def crawl_source(self, source: SourceConfig, limits: CrawlLimits | None = None) -> RunStats:
        """Crawl every seed of a source under the semaphore. Returns the finalized stats."""
        limits = limits or CrawlLimits()
        logger.info(f"[{source.slug}] Crawling {len(source.seed_urls)} seed(s)")
        await asyncio.gather(*(
            self.semaphore.acquire(lambda seed=seed: self.crawl(seed, source, limits))
            for seed in source.seed_urls
        ))
        self.stats.finalize()
        logger.info(f"[{source.slug}] Crawl complete: {self.stats.counters()}")
        return self.stats

    async def crawl(self, seed_url: str, source: SourceConfig, limits: CrawlLimits | None = None) -> RunStats:
        """Walk one seed's pagination loop."""
        limits = limits or CrawlLimits()
        page_url: str | None = seed_url
        page_number = page_number_of(seed_url) or 1
        pages_visited = 0
        new_items = 0
        visited: set[str] = set()

        while page_url and pages_visited < limits.max_pages:
            await self.rate_limiter.wait_if_needed()
            page = await self.fetcher.fetch(page_url, user_agent=self.settings.user_agent)
            if not page.ok:
                self.stats.errors += 1
                logger.warning(f"[{source.slug}] Stopping seed {seed_url} at page {page_number}: {page.error}")
                break

            self.stats.pages += 1
            pages_visited += 1
            visited.add(page_url)

            listing_urls = extract_listing_urls(page.content, page_url, source)
            logger.info(f"[{source.slug}] Page {page_number}: {len(listing_urls)} listing links")

            for listing_url in listing_urls:
                if new_items >= limits.max_new_items:
                    break
                outcome = await self._process_listing(listing_url, page_url, source)
                if outcome in (UpsertOutcome.CREATED, UpsertOutcome.UPDATED):
                    new_items += 1

            if new_items >= limits.max_new_items:
                logger.info(f"[{source.slug}] Item cap {limits.max_new_items} reached for seed {seed_url}")
                break

            next_url = find_next_page_url(page.content, page_url, page_number)
            if not next_url or next_url in visited:
                break
            page_url = next_url
            page_number += 1

        return self.stats

    async def _process_listing(self, url: str, parent_url: str, source: SourceConfig) -> UpsertOutcome | None:
        if self.tracker:
            self.tracker.record_discovered(url, dealership_id=source.id, parent_url=parent_url)
            if not self.tracker.is_processable(url):
                return None
            self.tracker.mark_processing(url)

        await self.rate_limiter.wait_if_needed()
        page = await self.fetcher.fetch(url, user_agent=self.settings.user_agent)
        if not page.ok:
            self.stats.errors += 1
            self._track_failure(url, page.error)
            return None

        try:
            raw = await self.extractor.extract(url, page.content)
            if raw is None:
                raise ListingValidationError(f"No listing data extracted from {url}")
            listing = self._validate(raw.fields)
            dedup_key = build_dedup_key(listing, source.dedup_fields)
            if dedup_key is None:
                raise ListingValidationError(f"No dedup key fields ({source.dedup_key_spec}) present")
        except ListingValidationError as e:
            self.stats.validation_failures += 1
            logger.warning(f"[{source.slug}] Skipping {url}: {e}")
            self._track_failure(url, str(e))
            return None
        except ConfigurationError:
            raise
        except CarScoutError as e:
            self.stats.errors += 1
            logger.warning(f"[{source.slug}] Failed to extract {url}: {e}")
            self._track_failure(url, str(e))
            return None
        except Exception as e:
            self.stats.errors += 1
            logger.exception(f"[{source.slug}] Unexpected error extracting {url}")
            self._track_failure(url, f"{type(e).__name__}: {e}")
            return None

        self.stats.found += 1
        try:
            result = self.gateway.upsert(listing, dedup_key, dealership_id=source.id, quality_score=raw.quality_score)
        except Exception as e:
            self.stats.errors += 1
            logger.exception(f"[{source.slug}] Failed to save {url}")
            self._track_failure(url, f"{type(e).__name__}: {e}")
            return None
        if result.outcome == UpsertOutcome.DUPLICATE:
            self.stats.duplicates += 1
        else:
            self.stats.upserts += 1
        if self.tracker:
            self.tracker.mark_processed(url, vehicles_extracted=1)
        return result.outcome

    @staticmethod
    def _validate(fields: dict) -> ListingSchema:
        try:
            return ListingSchema(**fields)
        except ValidationError as e:
            errors = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            raise ListingValidationError(errors) from e

    def _track_failure(self, url: str, error: str | None) -> None:
        if self.tracker:
            self.tracker.mark_failed(url, error or "unknown error")
