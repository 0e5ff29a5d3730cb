"""Four-stage extraction pipeline: Explore -> Analyze -> Extract -> Validate.

Stages run strictly in order and the first failure short-circuits the run.
Every stage result is a StageResult tagged with its stage name, so callers
read `failed_stage` instead of unpicking nested conditionals.
"""

import logging
import time
from dataclasses import dataclass, field

from pydantic import BaseModel, ValidationError

from carscout.config import get_settings
from carscout.errors import ExtractionStageError
from carscout.schemas.pipeline import AnalyzeOutput, ExploreOutput, ExtractedVehicle, ValidateOutput

logger = logging.getLogger(__name__)

STAGES = ("explore", "analyze", "extract", "validate")


@dataclass
class StageResult:
    stage: str
    ok: bool
    data: BaseModel | None = None
    error: str | None = None


@dataclass
class PipelineResult:
    url: str
    stages: list[StageResult] = field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return len(self.stages) == len(STAGES) and all(s.ok for s in self.stages)

    @property
    def failed_stage(self) -> str | None:
        for s in self.stages:
            if not s.ok:
                return s.stage
        return None

    @property
    def error(self) -> str | None:
        for s in self.stages:
            if not s.ok:
                return s.error
        return None

    def _data(self, stage: str):
        for s in self.stages:
            if s.stage == stage and s.ok:
                return s.data
        return None

    @property
    def exploration(self) -> ExploreOutput | None:
        return self._data("explore")

    @property
    def analysis(self) -> AnalyzeOutput | None:
        return self._data("analyze")

    @property
    def extracted(self) -> ExtractedVehicle | None:
        return self._data("extract")

    @property
    def validation(self) -> ValidateOutput | None:
        return self._data("validate")


def _parse(model: type[BaseModel], stage: str, payload: dict) -> BaseModel:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ExtractionStageError(stage, f"output does not match schema: {e.error_count()} error(s)") from e


class ExtractionPipeline:

    def __init__(self, client, settings=None):
        self.client = client
        self.settings = settings or get_settings()

    async def run_pipeline(self, url: str, content: str, depth: str = "shallow") -> PipelineResult:
        start = time.monotonic()
        result = PipelineResult(url=url)

        steps = (
            ("explore", lambda: self._explore(url, content, depth)),
            ("analyze", lambda: self._analyze(url, content)),
            ("extract", lambda: self._extract(url, content, result.analysis)),
            ("validate", lambda: self._validate(url, result.extracted)),
        )
        for stage, step in steps:
            stage_result = await self._run_stage(stage, step)
            result.stages.append(stage_result)
            if not stage_result.ok:
                break

        result.elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.ok:
            logger.info(
                f"Pipeline complete for {url} in {result.elapsed_ms}ms "
                f"(quality {result.validation.quality_score})"
            )
        return result

    async def explore_site(self, url: str, content: str, depth: str = "shallow") -> StageResult:
        """Run the Explore stage on its own, for site discovery."""
        return await self._run_stage("explore", lambda: self._explore(url, content, depth))

    def passes_quality_gate(self, result: PipelineResult, threshold: int | None = None) -> bool:
        """Valid and scored at or above the threshold."""
        threshold = self.settings.quality_threshold if threshold is None else threshold
        if not result.ok:
            return False
        return result.validation.is_valid and result.validation.quality_score >= threshold

    async def _run_stage(self, stage: str, step) -> StageResult:
        try:
            data = await step()
        except ExtractionStageError as e:
            logger.warning(f"[{stage}] {e}")
            return StageResult(stage=stage, ok=False, error=str(e))
        except Exception as e:
            logger.exception(f"[{stage}] Unexpected error")
            return StageResult(stage=stage, ok=False, error=f"{stage} stage failed: {type(e).__name__}: {e}")
        return StageResult(stage=stage, ok=True, data=data)

    async def _explore(self, url: str, content: str, depth: str) -> ExploreOutput:
        payload = await self.client.explore(url, content, depth)
        return _parse(ExploreOutput, "explore", payload)

    async def _analyze(self, url: str, content: str) -> AnalyzeOutput:
        payload = await self.client.analyze(url, content)
        return _parse(AnalyzeOutput, "analyze", payload)

    async def _extract(self, url: str, content: str, analysis: AnalyzeOutput) -> ExtractedVehicle:
        payload = await self.client.extract(url, content, analysis.strategy_hint())
        if not payload:
            if not self.settings.allow_placeholder_extraction:
                raise ExtractionStageError("extract", "empty output")
            logger.warning(f"[extract] Empty output for {url}; continuing with placeholder (all fields unknown)")
            return ExtractedVehicle(is_placeholder=True)
        return _parse(ExtractedVehicle, "extract", payload)

    async def _validate(self, url: str, extracted: ExtractedVehicle) -> ValidateOutput:
        payload = await self.client.validate(extracted.model_dump(mode="json"), {"url": url})
        return _parse(ValidateOutput, "validate", payload)
