"""
Shared fixtures for the carscout test suite.

Provides an in-memory SQLite session, test settings with politeness delays
switched off, a fake content intelligence service, and a small synthetic
dealership site served through httpx.MockTransport.
"""

import copy
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from carscout.config import Settings
from carscout.models import Base, Dealership
from carscout.schemas.dealership import SourceConfig
from carscout.scrapers.fetcher import PageFetcher
from carscout.scrapers.politeness import RateLimiter


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def make_dealership(db_session):
    """Factory for persisted Dealership rows."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "name": f"Dealer {n}",
            "slug": f"dealer-{n}",
            "base_url": "https://dealer.test",
            "seed_urls": ["https://dealer.test/used"],
            "allow_patterns": [r"^https://dealer\.test/"],
            "deny_patterns": [],
            "listing_url_pattern": r"/vehicle/\d+",
            "exploration_frequency": "daily",
        }
        fields.update(overrides)
        dealership = Dealership(**fields)
        db_session.add(dealership)
        db_session.commit()
        return dealership

    return _make


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
def test_settings():
    """Settings with every delay set to zero."""
    return Settings(
        _env_file=None,
        rate_limit_min_delay_ms=0,
        rate_limit_max_delay_ms=0,
        inter_batch_delay_ms=0,
        retry_backoff_ms=0,
        request_timeout_ms=5000,
    )


@pytest.fixture
def no_delay_limiter():
    return RateLimiter(0, 0)


@pytest.fixture
def source_config():
    return SourceConfig(
        slug="dealer-test",
        seed_urls=["https://dealer.test/used"],
        allow_patterns=[r"^https://dealer\.test/"],
        deny_patterns=[r"/vehicle/666"],
        listing_url_pattern=r"/vehicle/\d+",
    )


# =============================================================================
# Synthetic dealership site
# =============================================================================

def vehicle_page(year=2020, make="Toyota", model="Corolla", price="$18,500", mileage="30,000 km", vin=None):
    vin_line = f"<p>VIN: {vin}</p>" if vin else ""
    return f"""
    <html><head><title>{year} {make} {model}</title></head>
    <body>
      <h1>{year} {make} {model} LE</h1>
      <span class="price">{price}</span>
      <p>Odometer: {mileage}</p>
      {vin_line}
    </body></html>
    """


def listing_index(links, next_href=None):
    anchors = "".join(f'<a href="{href}">Vehicle</a>' for href in links)
    next_link = f'<a rel="next" href="{next_href}">Next</a>' if next_href else ""
    return f"<html><body><div class='grid'>{anchors}</div>{next_link}</body></html>"


class SiteServer:
    """Serves a dict of url -> html and records every request."""

    def __init__(self, pages: dict[str, str], failures: dict[str, int] | None = None):
        self.pages = pages
        self.failures = dict(failures or {})
        self.requests: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if self.failures.get(url, 0) > 0:
            self.failures[url] -= 1
            return httpx.Response(503, text="busy")
        if url not in self.pages:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=self.pages[url], headers={"Content-Type": "text/html"})

    def fetcher(self, settings) -> PageFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return PageFetcher(client=client, settings=settings)


@pytest.fixture
def html():
    """HTML builders: html.vehicle(...) and html.index(links, next_href)."""
    return SimpleNamespace(vehicle=vehicle_page, index=listing_index)


@pytest.fixture
def site():
    """Factory: site(pages, failures=None) -> SiteServer."""
    return SiteServer


# =============================================================================
# Content intelligence
# =============================================================================

EXPLORE_OUTPUT = {
    "candidates": [
        {"url": "/vehicle/1", "opportunity": "low", "reason": "regular listing"},
        {"url": "/vehicle/2", "opportunity": "high", "reason": "price drop badge"},
    ],
    "pagination_urls": ["/used?page=2"],
    "filter_urls": ["/used?make=toyota"],
    "site_structure": "paginated grid",
    "confidence": 0.9,
}

ANALYZE_OUTPUT = {
    "selectors": {"price": ".price", "title": "h1"},
    "extraction_method": "dom",
    "confidence": 0.8,
    "challenges": [],
    "recommendations": [],
}

EXTRACT_OUTPUT = {
    "make": "Toyota",
    "model": "Corolla",
    "year": 2020,
    "price": "$18,500",
    "currency": "usd",
    "mileage": "30.000 km",
    "features": ["Leather seats", "Sunroof"],
    "images": ["https://dealer.test/img/1.jpg"],
    "description": "Well kept",
}

VALIDATE_OUTPUT = {
    "is_valid": True,
    "completeness": 0.9,
    "precision": 0.9,
    "consistency": 0.95,
    "quality_score": 85,
    "issues": [],
    "is_duplicate": False,
    "recommendations": [],
}


class FakeContentIntelligence:
    """Stands in for ContentIntelligenceClient. Set responses[stage] to a dict or an exception."""

    def __init__(self):
        self.responses = {
            "explore": copy.deepcopy(EXPLORE_OUTPUT),
            "analyze": copy.deepcopy(ANALYZE_OUTPUT),
            "extract": copy.deepcopy(EXTRACT_OUTPUT),
            "validate": copy.deepcopy(VALIDATE_OUTPUT),
        }
        self.calls: list[str] = []

    async def _respond(self, stage):
        self.calls.append(stage)
        value = self.responses[stage]
        if isinstance(value, Exception):
            raise value
        return copy.deepcopy(value)

    async def explore(self, base_url, content, depth="shallow"):
        return await self._respond("explore")

    async def analyze(self, url, content):
        return await self._respond("analyze")

    async def extract(self, url, content, strategy=None):
        return await self._respond("extract")

    async def validate(self, extracted, context=None):
        return await self._respond("validate")


@pytest.fixture
def fake_ai():
    return FakeContentIntelligence()
