"""
Tests for the chat-messages HTTP client and status classification.
"""

import json

import httpx
import pytest

from chat_relay.llm.client import DifyChatClient, classify_status, error_detail
from chat_relay.llm.exceptions import (
    APIStatusError,
    ErrorCategory,
    QuotaExceededError,
    TransportError,
)


class TestClassifyStatus:
    """Non-2xx responses map to user-facing categories."""

    @pytest.mark.parametrize(
        ("status", "category"),
        [
            (401, ErrorCategory.AUTH),
            (403, ErrorCategory.PERMISSION),
            (404, ErrorCategory.NOT_FOUND),
            (405, ErrorCategory.METHOD_NOT_ALLOWED),
            (429, ErrorCategory.RATE_LIMIT),
            (500, ErrorCategory.SERVER_ERROR),
            (503, ErrorCategory.SERVER_ERROR),
            (418, ErrorCategory.UNKNOWN),
        ],
    )
    def test_status_categories(self, status, category):
        error = classify_status(status, '{"message": "nope"}', "https://api.x.com/v1")
        assert error.category is category
        assert error.status_code == status
        assert error.endpoint == "https://api.x.com/v1"

    def test_400_includes_provider_detail(self):
        error = classify_status(400, '{"message": "query is required"}')
        assert error.category is ErrorCategory.MALFORMED_REQUEST
        assert "query is required" in error.message

    def test_quota_pattern_wins_over_status(self):
        body = '{"code": "completion_request_error", "message": "Request failed with status code 402"}'
        error = classify_status(400, body)
        assert isinstance(error, QuotaExceededError)
        assert error.category is ErrorCategory.QUOTA

    def test_plain_402_is_quota(self):
        assert isinstance(classify_status(402, ""), QuotaExceededError)

    def test_unknown_status_falls_back_to_body(self):
        error = classify_status(418, "I'm a teapot")
        assert error.message == "I'm a teapot"

    def test_error_detail_handles_non_json(self):
        assert error_detail("gateway timeout") == ("gateway timeout", {})
        assert error_detail('{"error": "boom"}') == ("boom", {"error": "boom"})
        assert error_detail("") == ("", {})


class TestBlockingChat:
    """Non-streaming chat call."""

    @pytest.mark.asyncio
    async def test_returns_answer(self, client, provider):
        completion = await client.chat_blocking("https://api.x.com", "secret", "hello", "tester")

        assert completion.answer == "blocking answer"
        assert completion.task_id == "t-b"
        body = json.loads(provider.requests[0].content)
        assert body["response_mode"] == "blocking"
        assert body["user"] == "tester"

    @pytest.mark.asyncio
    async def test_status_error_propagates_category(self, client, provider):
        provider.blocking_status = 429
        provider.blocking_body = {"message": "slow down"}

        with pytest.raises(APIStatusError) as exc_info:
            await client.chat_blocking("https://api.x.com", "secret", "hello")
        assert exc_info.value.category is ErrorCategory.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_transport_failure_is_wrapped(self, client, provider):
        provider.fail_with(httpx.ConnectError("refused"))

        with pytest.raises(TransportError) as exc_info:
            await client.chat_blocking("https://api.x.com", "secret", "hello")
        assert "Network connection failed" in exc_info.value.message


class TestStopTask:
    """Remote stop request."""

    @pytest.mark.asyncio
    async def test_stop_request_shape(self, client, provider):
        await client.stop_task("https://api.x.com/", "secret", "t-7", "tester")

        request = provider.stop_requests()[0]
        assert str(request.url) == "https://api.x.com/v1/chat-messages/t-7/stop"
        assert json.loads(request.content) == {"user": "tester"}

    @pytest.mark.asyncio
    async def test_stop_failure_raises(self, client, provider):
        provider.stop_status = 404
        with pytest.raises(APIStatusError):
            await client.stop_task("https://api.x.com", "secret", "t-7")


class TestValidateApiKey:
    """Key probing."""

    @pytest.mark.asyncio
    async def test_valid_key(self, client, provider):
        result = await client.validate_api_key("https://api.x.com", "secret")
        assert result.valid
        assert provider.paths() == ["/v1/applications"]

    @pytest.mark.asyncio
    async def test_falls_back_to_chat_probe(self, client, provider):
        provider.applications_status = 404

        result = await client.validate_api_key("https://api.x.com", "secret")

        assert result.valid
        assert provider.paths() == ["/v1/applications", "/v1/chat-messages"]
        probe = json.loads(provider.requests[1].content)
        assert probe["response_mode"] == "blocking"
        assert probe["conversation_id"] == ""

    @pytest.mark.asyncio
    async def test_invalid_key(self, client, provider):
        provider.applications_status = 401
        result = await client.validate_api_key("https://api.x.com", "bad")
        assert not result.valid
        assert result.status_code == 401
        assert result.message == "API key is invalid or expired"

    @pytest.mark.asyncio
    async def test_quota_exhausted_counts_as_valid(self, client, provider):
        provider.applications_status = 405
        provider.blocking_status = 400
        provider.blocking_body = {"message": "Request failed with status code 402"}

        result = await client.validate_api_key("https://api.x.com", "secret")

        assert result.valid
        assert "quota" in result.message

    @pytest.mark.asyncio
    async def test_network_failure_is_invalid(self, client, provider):
        provider.fail_with(httpx.ConnectError("refused"))
        result = await client.validate_api_key("https://api.x.com", "secret")
        assert not result.valid
        assert result.status_code is None


@pytest.mark.asyncio
async def test_client_context_manager_closes(provider):
    async with DifyChatClient(transport=provider.transport) as chat_client:
        assert not chat_client.client.is_closed
    assert chat_client.client.is_closed
