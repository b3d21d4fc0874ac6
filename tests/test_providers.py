"""Tests for the SDK-backed providers against a mocked HTTP transport."""

import json

import httpx
import pytest

from articlegen.llm import AnthropicProvider, OpenAIProvider
from articlegen.llm.base import ProviderError
from articlegen.llm.gateway import ErrorCode, ModelCallConfig, call_model

OPENAI_CONFIG = ModelCallConfig(model="openai/gpt-4o", max_tokens=300, temperature=0.1)
ANTHROPIC_CONFIG = ModelCallConfig(model="anthropic/claude-sonnet-4", max_tokens=300, temperature=0.1)


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def _openai(handler) -> OpenAIProvider:
    return OpenAIProvider(api_key="test-key", base_url="https://llm.test/api/v1", http_client=_client(handler))


def _anthropic(handler) -> AnthropicProvider:
    return AnthropicProvider(api_key="test-key", http_client=_client(handler))


def _bad_gateway(request: httpx.Request) -> httpx.Response:
    return httpx.Response(502, text="upstream exploded")


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class TestOpenAIProvider:

    def test_completion_and_usage(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={
                "id": "chatcmpl-1",
                "object": "chat.completion",
                "created": 0,
                "model": "openai/gpt-4o",
                "choices": [{
                    "index": 0,
                    "message": {"role": "assistant", "content": '{"title": "朝ヨガ"}'},
                    "finish_reason": "stop",
                }],
                "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
            })

        result = call_model(_openai(handler), "sys", "user", OPENAI_CONFIG)
        assert result.ok
        assert result.data == {"title": "朝ヨガ"}
        assert result.tokens_used == 15
        body = seen[0]
        assert body["model"] == "openai/gpt-4o"
        assert body["messages"][0] == {"role": "system", "content": "sys"}
        assert body["response_format"] == {"type": "json_object"}

    def test_error_status_carries_code_and_body(self):
        with pytest.raises(ProviderError) as exc:
            _openai(_bad_gateway).chat("sys", "user", model="openai/gpt-4o", max_tokens=10, temperature=0)
        assert exc.value.status_code == 502
        assert exc.value.body == "upstream exploded"

    def test_error_status_becomes_gateway_error(self):
        result = call_model(_openai(_bad_gateway), "sys", "user", OPENAI_CONFIG)
        assert result.error_code == ErrorCode.GATEWAY_ERROR
        assert "502" in result.error
        assert "upstream exploded" in result.error

    def test_connection_error_becomes_gateway_error(self):
        result = call_model(_openai(_refuse), "sys", "user", OPENAI_CONFIG)
        assert result.error_code == ErrorCode.GATEWAY_ERROR
        assert "unreachable" in result.error


class TestAnthropicProvider:

    def test_completion_and_usage(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={
                "id": "msg_1",
                "type": "message",
                "role": "assistant",
                "model": "claude-sonnet-4",
                "content": [{"type": "text", "text": '{"title": "朝ヨガ"}'}],
                "stop_reason": "end_turn",
                "stop_sequence": None,
                "usage": {"input_tokens": 10, "output_tokens": 5},
            })

        result = call_model(_anthropic(handler), "sys", "user", ANTHROPIC_CONFIG)
        assert result.ok
        assert result.data == {"title": "朝ヨガ"}
        assert result.tokens_used == 15
        assert seen[0]["model"] == "claude-sonnet-4"
        assert seen[0]["system"] == "sys"

    def test_error_status_becomes_gateway_error(self):
        result = call_model(_anthropic(_bad_gateway), "sys", "user", ANTHROPIC_CONFIG)
        assert result.error_code == ErrorCode.GATEWAY_ERROR
        assert "502" in result.error
        assert "upstream exploded" in result.error

    def test_connection_error_becomes_gateway_error(self):
        result = call_model(_anthropic(_refuse), "sys", "user", ANTHROPIC_CONFIG)
        assert result.error_code == ErrorCode.GATEWAY_ERROR
        assert "unreachable" in result.error
