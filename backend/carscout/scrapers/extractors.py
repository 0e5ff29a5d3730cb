"""Listing extractors: turn a fetched listing page into raw listing fields.

Each source names its extractor in config. `generic` reads schema.org
JSON-LD, then OpenGraph/product meta tags, then falls back to text
heuristics. `pipeline` hands the page to the AI extraction pipeline and only
yields fields when the quality gate passes.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from carscout.errors import ExtractionStageError
from carscout.scrapers.registry import register_extractor
from carscout.services.normalization import parse_number, parse_price

logger = logging.getLogger(__name__)

VEHICLE_TYPES = {"vehicle", "car", "motorcycle", "product", "individualproduct"}
YEAR_RE = re.compile(r"\b(19[0-9]{2}|20[0-9]{2})\b")
MILEAGE_RE = re.compile(r"([\d][\d.,]*)\s*(?:km|kms|kilometers|kilómetros|mi|miles)\b", re.IGNORECASE)
VIN_RE = re.compile(r"\bVIN\b[:#\s]*([A-HJ-NPR-Z0-9]{17})\b", re.IGNORECASE)
PRICE_RE = re.compile(r"(?:US\$|\$|USD|MXN|€|EUR)\s*([\d][\d.,]*)", re.IGNORECASE)


@dataclass
class RawListing:
    """Unvalidated listing fields plus the quality score, when one was computed."""

    fields: dict[str, Any] = field(default_factory=dict)
    quality_score: int | None = None


class ListingExtractor(ABC):
    """Base class for listing extractors.

    Subclasses implement extract(url, content) and return None when the
    page does not describe a vehicle.
    """

    name = ""

    def __init__(self, source, **kwargs):
        self.source = source

    @abstractmethod
    async def extract(self, url: str, content: str) -> RawListing | None:
        ...


@register_extractor("generic")
class GenericHtmlExtractor(ListingExtractor):

    async def extract(self, url: str, content: str) -> RawListing | None:
        soup = BeautifulSoup(content, "lxml")

        data = self._from_json_ld(soup)
        meta = self._from_meta(soup)
        text = self._from_text(soup)
        for fallback in (meta, text):
            for key, value in fallback.items():
                if data.get(key) in (None, "", []):
                    data[key] = value

        title = data.pop("_title", None)
        if title and not (data.get("make") and data.get("model")):
            for key, value in self._parse_title(title).items():
                if not data.get(key):
                    data[key] = value

        if not any(data.get(key) for key in ("make", "model", "price")):
            logger.debug(f"[{self.source.slug}] No vehicle data found at {url}")
            return None

        canonical = soup.find("link", rel="canonical")
        data["canonical_url"] = urljoin(url, canonical["href"]) if canonical and canonical.get("href") else url
        data["photos"] = [urljoin(url, p) for p in data.get("photos") or [] if p]
        data["raw_snapshot"] = {"extractor": self.name, "url": url}
        return RawListing(fields={k: v for k, v in data.items() if v is not None})

    # Strategy 1: schema.org JSON-LD
    def _from_json_ld(self, soup: BeautifulSoup) -> dict[str, Any]:
        for script in soup.find_all("script", type="application/ld+json"):
            try:
                payload = json.loads(script.string or "")
            except ValueError:
                continue
            node = self._find_vehicle_node(payload)
            if node:
                return self._map_json_ld(node)
        return {}

    def _find_vehicle_node(self, payload) -> dict | None:
        if isinstance(payload, list):
            for item in payload:
                found = self._find_vehicle_node(item)
                if found:
                    return found
            return None
        if not isinstance(payload, dict):
            return None
        if "@graph" in payload:
            return self._find_vehicle_node(payload["@graph"])
        types = payload.get("@type")
        types = types if isinstance(types, list) else [types]
        if any(isinstance(t, str) and t.lower() in VEHICLE_TYPES for t in types):
            return payload
        return None

    @staticmethod
    def _map_json_ld(node: dict) -> dict[str, Any]:
        offers = node.get("offers") or {}
        if isinstance(offers, list):
            offers = offers[0] if offers else {}
        if not isinstance(offers, dict):
            offers = {}
        brand = node.get("brand") or node.get("manufacturer")
        if isinstance(brand, dict):
            brand = brand.get("name")
        model = node.get("model")
        if isinstance(model, dict):
            model = model.get("name")
        odometer = node.get("mileageFromOdometer")
        if isinstance(odometer, dict):
            odometer = odometer.get("value")
        images = node.get("image") or []
        if isinstance(images, str):
            images = [images]
        year = node.get("vehicleModelDate") or node.get("modelDate") or node.get("productionDate")

        mileage = parse_number(odometer)
        year_number = parse_number(str(year)[:4]) if year else None
        return {
            "make": brand,
            "model": model,
            "trim": node.get("vehicleConfiguration"),
            "year": int(year_number) if year_number else None,
            "price": parse_price(offers.get("price")),
            "currency": offers.get("priceCurrency"),
            "mileage": int(mileage) if mileage is not None else None,
            "vin": node.get("vehicleIdentificationNumber"),
            "external_id": node.get("sku") or node.get("productID"),
            "photos": [img for img in images if isinstance(img, str)],
            "_title": node.get("name"),
        }

    # Strategy 2: OpenGraph / product meta tags
    @staticmethod
    def _from_meta(soup: BeautifulSoup) -> dict[str, Any]:
        def meta(prop: str) -> str | None:
            tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
            return tag.get("content") if tag else None

        data: dict[str, Any] = {
            "price": parse_price(meta("product:price:amount") or meta("og:price:amount")),
            "currency": meta("product:price:currency") or meta("og:price:currency"),
            "make": meta("product:brand"),
            "_title": meta("og:title"),
        }
        image = meta("og:image")
        if image:
            data["photos"] = [image]
        return data

    # Strategy 3: text heuristics over the title and body
    def _from_text(self, soup: BeautifulSoup) -> dict[str, Any]:
        title_el = soup.find("h1") or soup.find("title")
        title = title_el.get_text(" ", strip=True) if title_el else ""
        body = soup.get_text(" ", strip=True)
        data: dict[str, Any] = self._parse_title(title)

        price_el = soup.select_one("[itemprop='price'], [class*='price']")
        if price_el:
            data["price"] = parse_price(price_el.get("content") or price_el.get_text(" ", strip=True))
        if not data.get("price"):
            match = PRICE_RE.search(body)
            data["price"] = parse_price(match.group(1)) if match else None

        match = MILEAGE_RE.search(body)
        if match:
            mileage = parse_number(match.group(1))
            data["mileage"] = int(mileage) if mileage is not None else None

        match = VIN_RE.search(body)
        if match:
            data["vin"] = match.group(1)

        data["photos"] = [img["src"] for img in soup.select("img[src]") if "vehicle" in " ".join(img.get("class", []))]
        return data

    @staticmethod
    def _parse_title(title: str) -> dict[str, Any]:
        """Split '2019 Toyota Corolla LE' into year, make, model and trim."""
        match = YEAR_RE.search(title)
        if not match:
            return {}
        words = title[match.end():].split()
        return {
            "year": int(match.group(1)),
            "make": words[0] if words else None,
            "model": words[1] if len(words) > 1 else None,
            "trim": " ".join(words[2:]) or None,
        }


@register_extractor("pipeline")
class PipelineListingExtractor(ListingExtractor):
    """Runs the four-stage AI pipeline and yields fields only past the quality gate."""

    def __init__(self, source, pipeline=None, **kwargs):
        super().__init__(source)
        if pipeline is None:
            from carscout.services.content_intelligence import ContentIntelligenceClient
            from carscout.services.extraction_pipeline import ExtractionPipeline

            pipeline = ExtractionPipeline(ContentIntelligenceClient())
        self.pipeline = pipeline

    async def extract(self, url: str, content: str) -> RawListing | None:
        threshold = self.source.exploration_config.quality_threshold
        result = await self.pipeline.run_pipeline(url, content, depth=self.source.exploration_config.depth)
        if not result.ok:
            raise ExtractionStageError(result.failed_stage, result.error or "failed", result=result)
        if not self.pipeline.passes_quality_gate(result, threshold):
            logger.info(
                f"[{self.source.slug}] Below quality gate ({result.validation.quality_score} < {threshold}): {url}"
            )
            return None
        return RawListing(
            fields=result.extracted.to_listing_fields(url),
            quality_score=result.validation.quality_score,
        )
