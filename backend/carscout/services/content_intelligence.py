"""HTTP client for the content intelligence service.

The service exposes four entry points (explore, analyze, extract,
validate). Each takes a JSON prompt-context object and must answer with a
JSON object. Anything else raises ExtractionStageError for that stage.
"""

import asyncio
import logging
from typing import Any

import httpx

from carscout.config import get_settings
from carscout.errors import ExtractionStageError

logger = logging.getLogger(__name__)

# Pages are truncated before being sent to keep prompts bounded
MAX_CONTENT_CHARS = 50000


class ContentIntelligenceClient:

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout_ms: int | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.ai_service_url).rstrip("/")
        self.token = token if token is not None else settings.ai_service_token
        self.timeout = (timeout_ms or settings.stage_timeout_ms) / 1000
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        if self._owns_client:
            await self._client.aclose()

    async def explore(self, base_url: str, content: str, depth: str = "shallow") -> dict[str, Any]:
        return await self._call("explore", {
            "base_url": base_url,
            "content": content[:MAX_CONTENT_CHARS],
            "depth": depth,
        })

    async def analyze(self, url: str, content: str) -> dict[str, Any]:
        return await self._call("analyze", {"url": url, "content": content[:MAX_CONTENT_CHARS]})

    async def extract(self, url: str, content: str, strategy: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self._call("extract", {
            "url": url,
            "content": content[:MAX_CONTENT_CHARS],
            "strategy": strategy,
        })

    async def validate(self, extracted: dict[str, Any], context: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self._call("validate", {"data": extracted, "context": context or {}})

    async def _call(self, stage: str, context: dict[str, Any]) -> dict[str, Any]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            resp = await asyncio.wait_for(
                self._client.post(f"{self.base_url}/{stage}", json=context, headers=headers, timeout=self.timeout),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise ExtractionStageError(stage, f"timed out after {int(self.timeout * 1000)}ms")
        except httpx.HTTPError as e:
            raise ExtractionStageError(stage, f"{type(e).__name__}: {e}") from e

        if not resp.is_success:
            raise ExtractionStageError(stage, f"HTTP {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise ExtractionStageError(stage, f"malformed JSON: {e}") from e

        if not isinstance(payload, dict):
            raise ExtractionStageError(stage, f"expected a JSON object, got {type(payload).__name__}")
        return payload
