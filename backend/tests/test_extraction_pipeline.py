"""
Tests for the four-stage extraction pipeline.
"""

import pytest

from carscout.errors import ExtractionStageError
from carscout.services.extraction_pipeline import ExtractionPipeline

URL = "https://dealer.test/vehicle/1"


class TestRunPipeline:

    @pytest.mark.asyncio
    async def test_runs_all_stages_in_order(self, fake_ai, test_settings):
        pipeline = ExtractionPipeline(fake_ai, test_settings)

        result = await pipeline.run_pipeline(URL, "<html>")

        assert result.ok is True
        assert fake_ai.calls == ["explore", "analyze", "extract", "validate"]
        assert [s.stage for s in result.stages] == ["explore", "analyze", "extract", "validate"]
        assert result.failed_stage is None
        assert result.elapsed_ms >= 0

    @pytest.mark.asyncio
    async def test_extract_output_is_normalized(self, fake_ai, test_settings):
        result = await ExtractionPipeline(fake_ai, test_settings).run_pipeline(URL, "<html>")

        assert result.extracted.price == 18500
        assert result.extracted.mileage == 30000
        assert result.validation.quality_score == 85

    @pytest.mark.asyncio
    async def test_stage_error_short_circuits(self, fake_ai, test_settings):
        fake_ai.responses["analyze"] = ExtractionStageError("analyze", "malformed JSON")

        result = await ExtractionPipeline(fake_ai, test_settings).run_pipeline(URL, "<html>")

        assert result.ok is False
        assert result.failed_stage == "analyze"
        assert "malformed JSON" in result.error
        assert fake_ai.calls == ["explore", "analyze"]
        assert result.extracted is None

    @pytest.mark.asyncio
    async def test_unexpected_client_error_is_stage_failure(self, fake_ai, test_settings):
        fake_ai.responses["extract"] = RuntimeError("connection reset")

        result = await ExtractionPipeline(fake_ai, test_settings).run_pipeline(URL, "<html>")

        assert result.ok is False
        assert result.failed_stage == "extract"
        assert result.error == "extract stage failed: RuntimeError: connection reset"
        assert fake_ai.calls == ["explore", "analyze", "extract"]

    @pytest.mark.asyncio
    async def test_schema_mismatch_is_stage_failure(self, fake_ai, test_settings):
        fake_ai.responses["validate"] = {"is_valid": True, "quality_score": 150}

        result = await ExtractionPipeline(fake_ai, test_settings).run_pipeline(URL, "<html>")

        assert result.failed_stage == "validate"

    @pytest.mark.asyncio
    async def test_empty_extract_fails_by_default(self, fake_ai, test_settings):
        fake_ai.responses["extract"] = {}

        result = await ExtractionPipeline(fake_ai, test_settings).run_pipeline(URL, "<html>")

        assert result.failed_stage == "extract"
        assert "validate" not in fake_ai.calls

    @pytest.mark.asyncio
    async def test_empty_extract_uses_null_placeholder_when_enabled(self, fake_ai, test_settings, caplog):
        fake_ai.responses["extract"] = {}
        settings = test_settings.model_copy(update={"allow_placeholder_extraction": True})

        result = await ExtractionPipeline(fake_ai, settings).run_pipeline(URL, "<html>")

        assert result.ok is True
        assert result.extracted.is_placeholder is True
        assert result.extracted.make is None
        assert result.extracted.price is None
        assert "placeholder" in caplog.text


class TestQualityGate:

    @pytest.mark.asyncio
    async def test_passes_at_threshold(self, fake_ai, test_settings):
        fake_ai.responses["validate"]["quality_score"] = 70
        pipeline = ExtractionPipeline(fake_ai, test_settings)

        result = await pipeline.run_pipeline(URL, "<html>")

        assert pipeline.passes_quality_gate(result, 70) is True
        assert pipeline.passes_quality_gate(result, 71) is False

    @pytest.mark.asyncio
    async def test_invalid_never_passes(self, fake_ai, test_settings):
        fake_ai.responses["validate"]["is_valid"] = False
        pipeline = ExtractionPipeline(fake_ai, test_settings)

        result = await pipeline.run_pipeline(URL, "<html>")

        assert pipeline.passes_quality_gate(result, 0) is False

    @pytest.mark.asyncio
    async def test_failed_pipeline_never_passes(self, fake_ai, test_settings):
        fake_ai.responses["explore"] = ExtractionStageError("explore", "timeout")
        pipeline = ExtractionPipeline(fake_ai, test_settings)

        result = await pipeline.run_pipeline(URL, "<html>")

        assert pipeline.passes_quality_gate(result) is False

    @pytest.mark.asyncio
    async def test_explore_site_runs_only_explore(self, fake_ai, test_settings):
        stage = await ExtractionPipeline(fake_ai, test_settings).explore_site("https://dealer.test", "<html>")

        assert stage.ok is True
        assert len(stage.data.candidates) == 2
        assert fake_ai.calls == ["explore"]
