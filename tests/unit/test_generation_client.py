"""
Unit tests for the OpenAI-compatible generation client.
"""

import json

import httpx
import pytest

from jira_planner.core.config import GenerationSettings
from jira_planner.core.exceptions import GenerationServiceError, NetworkError, RateLimitError
from jira_planner.llm.generation_client import OpenAICompatibleGenerationService


def make_service(handler, model="test-model"):
    service = OpenAICompatibleGenerationService(
        GenerationSettings(base_url="http://llm.test/v1/", api_key="secret", model=model)
    )
    service._client = httpx.AsyncClient(
        base_url=service.base_url,
        transport=httpx.MockTransport(handler),
    )
    return service


def completion(text):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": text}}]})


class TestOpenAICompatibleGenerationService:
    """Tests for OpenAICompatibleGenerationService."""

    @pytest.mark.asyncio
    async def test_generate_returns_message_content(self):
        """Test that the prompt is sent as chat messages and the reply extracted."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return completion("Analysis text")

        service = make_service(handler)
        text = await service.generate("Plan a shop", system_prompt="Be brief")
        await service.close()

        assert text == "Analysis text"
        assert seen["path"] == "/v1/chat/completions"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Plan a shop"},
        ]

    @pytest.mark.asyncio
    async def test_missing_model_fails_explicitly(self):
        service = make_service(lambda request: completion("unused"), model=None)

        with pytest.raises(GenerationServiceError):
            await service.generate("prompt")

    @pytest.mark.asyncio
    async def test_blank_response_is_an_error(self):
        service = make_service(lambda request: completion("   "))

        with pytest.raises(GenerationServiceError) as exc_info:
            await service.generate("prompt")

        assert "No response" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_throttling_maps_to_rate_limit_error(self):
        """Test that HTTP 429 carries the provider's retry-after."""
        service = make_service(lambda request: httpx.Response(429, headers={"retry-after": "7"}))

        with pytest.raises(RateLimitError) as exc_info:
            await service.generate("prompt")

        assert exc_info.value.retry_after == 7

    @pytest.mark.asyncio
    async def test_server_error_maps_to_service_error(self):
        service = make_service(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(GenerationServiceError) as exc_info:
            await service.generate("prompt")

        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_transport_failure_maps_to_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        service = make_service(handler)

        with pytest.raises(NetworkError):
            await service.generate("prompt")
