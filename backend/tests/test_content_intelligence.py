"""
Tests for the content intelligence HTTP client.
"""

import json

import httpx
import pytest

from carscout.errors import ExtractionStageError
from carscout.services.content_intelligence import MAX_CONTENT_CHARS, ContentIntelligenceClient


def make_client(handler, token=None):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ContentIntelligenceClient(base_url="https://ai.test/", token=token, timeout_ms=5000, client=http)


class TestStageCalls:

    @pytest.mark.asyncio
    async def test_posts_context_to_stage_endpoint(self):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            captured["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"confidence": 0.5})

        client = make_client(handler, token="secret")
        payload = await client.explore("https://dealer.test", "x" * (MAX_CONTENT_CHARS + 10), depth="deep")

        assert payload == {"confidence": 0.5}
        assert captured["url"] == "https://ai.test/explore"
        assert captured["body"]["depth"] == "deep"
        assert len(captured["body"]["content"]) == MAX_CONTENT_CHARS
        assert captured["auth"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_extract_sends_strategy_hint(self):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        await make_client(handler).extract("https://dealer.test/vehicle/1", "<html>", {"method": "dom"})

        assert captured["body"]["strategy"] == {"method": "dom"}


class TestStrictJson:

    @pytest.mark.asyncio
    async def test_malformed_json_is_stage_error(self):
        client = make_client(lambda request: httpx.Response(200, text="Sure! Here is the JSON: {"))

        with pytest.raises(ExtractionStageError) as exc_info:
            await client.analyze("https://dealer.test/vehicle/1", "<html>")
        assert exc_info.value.stage == "analyze"

    @pytest.mark.asyncio
    async def test_non_object_json_is_stage_error(self):
        client = make_client(lambda request: httpx.Response(200, json=[1, 2, 3]))

        with pytest.raises(ExtractionStageError, match="expected a JSON object"):
            await client.validate({"make": "Toyota"})

    @pytest.mark.asyncio
    async def test_http_error_status_is_stage_error(self):
        client = make_client(lambda request: httpx.Response(500, json={"error": "model overloaded"}))

        with pytest.raises(ExtractionStageError, match="HTTP 500"):
            await client.extract("https://dealer.test/vehicle/1", "<html>")

    @pytest.mark.asyncio
    async def test_transport_error_is_stage_error(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(ExtractionStageError) as exc_info:
            await make_client(handler).explore("https://dealer.test", "<html>")
        assert exc_info.value.stage == "explore"
