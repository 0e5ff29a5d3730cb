"""
Tests for listing extractors and the extractor registry.
"""

import json

import pytest

from carscout.errors import ConfigurationError, ExtractionStageError
from carscout.scrapers import GenericHtmlExtractor, PipelineListingExtractor
from carscout.scrapers.registry import build_extractor, get_extractor_class, list_extractors
from carscout.services.extraction_pipeline import ExtractionPipeline

URL = "https://dealer.test/vehicle/1"


class TestRegistry:

    def test_builtin_extractors_registered(self):
        assert {"generic", "pipeline"} <= set(list_extractors())
        assert get_extractor_class("generic") is GenericHtmlExtractor

    def test_unknown_extractor_is_configuration_error(self, source_config):
        source = source_config.model_copy(update={"extractor": "nope"})
        with pytest.raises(ConfigurationError):
            build_extractor(source)


class TestGenericHtmlExtractor:

    @pytest.mark.asyncio
    async def test_json_ld_vehicle(self, source_config):
        data = {
            "@context": "https://schema.org",
            "@type": "Car",
            "name": "2019 Honda Civic EX",
            "brand": {"@type": "Brand", "name": "Honda"},
            "model": "Civic",
            "vehicleModelDate": "2019",
            "mileageFromOdometer": {"@type": "QuantitativeValue", "value": "42,000", "unitCode": "KMT"},
            "vehicleIdentificationNumber": "2hgfc2f59kh123456",
            "image": ["/img/civic.jpg"],
            "offers": {"@type": "Offer", "price": "21500", "priceCurrency": "USD"},
        }
        page = f'<html><head><script type="application/ld+json">{json.dumps(data)}</script></head><body></body></html>'

        raw = await GenericHtmlExtractor(source_config).extract(URL, page)

        assert raw.fields["make"] == "Honda"
        assert raw.fields["model"] == "Civic"
        assert raw.fields["year"] == 2019
        assert raw.fields["price"] == 21500
        assert raw.fields["mileage"] == 42000
        assert raw.fields["photos"] == ["https://dealer.test/img/civic.jpg"]
        assert raw.fields["canonical_url"] == URL

    @pytest.mark.parametrize("offers", ["Call for price", ["Call for price"], 42])
    @pytest.mark.asyncio
    async def test_json_ld_offers_not_an_object(self, source_config, offers):
        data = {"@type": "Car", "brand": "Honda", "model": "Civic", "vehicleModelDate": "2019", "offers": offers}
        page = (
            f'<html><head><script type="application/ld+json">{json.dumps(data)}</script></head>'
            '<body><span class="price">$19,900</span></body></html>'
        )

        raw = await GenericHtmlExtractor(source_config).extract(URL, page)

        assert raw.fields["make"] == "Honda"
        assert raw.fields["year"] == 2019
        assert raw.fields["price"] == 19900

    @pytest.mark.asyncio
    async def test_text_heuristics(self, source_config, html):
        page = html.vehicle(vin="1HGCM82633A004352")

        raw = await GenericHtmlExtractor(source_config).extract(URL, page)

        assert raw.fields["year"] == 2020
        assert raw.fields["make"] == "Toyota"
        assert raw.fields["model"] == "Corolla"
        assert raw.fields["trim"] == "LE"
        assert raw.fields["price"] == 18500
        assert raw.fields["mileage"] == 30000
        assert raw.fields["vin"] == "1HGCM82633A004352"

    @pytest.mark.asyncio
    async def test_canonical_link_is_used(self, source_config, html):
        page = html.vehicle().replace("<head>", '<head><link rel="canonical" href="/vehicle/1?ref=x">')

        raw = await GenericHtmlExtractor(source_config).extract(URL, page)

        assert raw.fields["canonical_url"] == "https://dealer.test/vehicle/1?ref=x"

    @pytest.mark.asyncio
    async def test_page_without_vehicle_data(self, source_config):
        raw = await GenericHtmlExtractor(source_config).extract(URL, "<html><body><p>About us</p></body></html>")
        assert raw is None


class TestPipelineListingExtractor:

    @pytest.mark.asyncio
    async def test_yields_fields_above_gate(self, source_config, fake_ai, test_settings):
        extractor = PipelineListingExtractor(source_config, pipeline=ExtractionPipeline(fake_ai, test_settings))

        raw = await extractor.extract(URL, "<html>")

        assert raw.quality_score == 85
        assert raw.fields["make"] == "Toyota"
        assert raw.fields["photos"] == ["https://dealer.test/img/1.jpg"]
        assert raw.fields["canonical_url"] == URL

    @pytest.mark.asyncio
    async def test_below_gate_yields_nothing(self, source_config, fake_ai, test_settings):
        fake_ai.responses["validate"]["quality_score"] = 40
        extractor = PipelineListingExtractor(source_config, pipeline=ExtractionPipeline(fake_ai, test_settings))

        assert await extractor.extract(URL, "<html>") is None

    @pytest.mark.asyncio
    async def test_failed_stage_raises(self, source_config, fake_ai, test_settings):
        fake_ai.responses["extract"] = ExtractionStageError("extract", "bad json")
        extractor = PipelineListingExtractor(source_config, pipeline=ExtractionPipeline(fake_ai, test_settings))

        with pytest.raises(ExtractionStageError) as exc_info:
            await extractor.extract(URL, "<html>")

        assert exc_info.value.stage == "extract"
        assert exc_info.value.result.failed_stage == "extract"
