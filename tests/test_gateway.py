"""Tests for the model call gateway and JSON extraction."""

import json

import pytest

from articlegen.llm.base import ProviderError
from articlegen.llm.gateway import (
    ErrorCode,
    JSONExtractionError,
    ModelCallConfig,
    call_model,
    extract_json,
    strip_code_fence,
)
from tests.conftest import FakeProvider

CONFIG = ModelCallConfig(model="openai/gpt-4o", max_tokens=500, temperature=0.2)


class TestStripCodeFence:

    def test_json_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_fence(self):
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_fence_inside_prose_left_alone(self):
        raw = 'Here you go:\n```json\n{"a": 1}\n```\nThanks'
        assert strip_code_fence(raw) == raw.strip()

    def test_no_fence_trims(self):
        assert strip_code_fence('   {"a": 1}  \n') == '{"a": 1}'


class TestExtractJson:

    def test_direct_object(self):
        assert extract_json('{"title": "x"}') == {"title": "x"}

    def test_object_embedded_in_text(self):
        assert extract_json('Sure! {"title": "a {b}"} hope that helps') == {"title": "a {b}"}

    def test_braces_inside_strings_do_not_confuse_balancing(self):
        raw = 'prefix {"html": "<p>}</p>", "n": 1} suffix'
        assert extract_json(raw) == {"html": "<p>}</p>", "n": 1}

    def test_array_yields_first_object(self):
        assert extract_json('[{"title": "first"}, {"title": "second"}]') == {"title": "first"}

    def test_double_encoded_string(self):
        assert extract_json('"{\\"title\\": \\"x\\"}"') == {"title": "x"}

    def test_truncated_json_raises(self):
        with pytest.raises(JSONExtractionError):
            extract_json('{"html": "<p>cut off')

    def test_fenced_block_inside_prose(self):
        assert extract_json('Here you go:\n```json\n{"a": 1}\n```\nThanks') == {"a": 1}

    def test_fences_inside_string_values(self):
        payload = {"html": "<p>例:</p><pre>```\nprint(1)\n```</pre>"}
        assert extract_json(json.dumps(payload, ensure_ascii=False)) == payload

    def test_outer_fence_around_value_with_fences(self):
        payload = {"html": "<pre>```python\nx = 1\n```</pre>"}
        raw = "```json\n" + json.dumps(payload, ensure_ascii=False) + "\n```"
        assert extract_json(raw) == payload

    def test_object_with_fenced_value_inside_prose(self):
        assert extract_json('Result:\n{"html": "```x```"} done') == {"html": "```x```"}


class TestCallModel:

    def test_success_with_tokens(self):
        provider = FakeProvider(['```json\n{"ok": true}\n```'], total_tokens=321)
        result = call_model(provider, "sys", "user", CONFIG)
        assert result.ok
        assert result.data == {"ok": True}
        assert result.tokens_used == 321
        call = provider.calls[0]
        assert call["system_prompt"] == "sys"
        assert call["user_prompt"] == "user"
        assert call["model"] == "openai/gpt-4o"
        assert call["max_tokens"] == 500

    def test_provider_error_becomes_gateway_error(self):
        provider = FakeProvider([ProviderError("Model endpoint error: 502 - bad gateway", status_code=502, body="bad gateway")])
        result = call_model(provider, "sys", "user", CONFIG)
        assert not result.ok
        assert result.error_code == ErrorCode.GATEWAY_ERROR
        assert "502" in result.error
        assert "bad gateway" in result.error

    def test_unexpected_exception_never_escapes(self):
        def boom(system, user):
            raise RuntimeError("socket closed")

        result = call_model(FakeProvider([boom]), "sys", "user", CONFIG)
        assert result.error_code == ErrorCode.GATEWAY_ERROR
        assert "socket closed" in result.error

    def test_empty_content(self):
        result = call_model(FakeProvider([""]), "sys", "user", CONFIG)
        assert result.error_code == ErrorCode.GATEWAY_ERROR
        assert result.error == "No content in response"

    def test_parse_error_keeps_500_char_excerpt(self):
        raw = '{"html": "' + "x" * 2000
        result = call_model(FakeProvider([raw], total_tokens=42), "sys", "user", CONFIG)
        assert result.error_code == ErrorCode.PARSE_ERROR
        assert result.raw_excerpt == raw[:500]
        assert result.tokens_used == 42

    def test_no_internal_retry(self):
        provider = FakeProvider(["not json", '{"ok": true}'])
        result = call_model(provider, "sys", "user", CONFIG)
        assert result.error_code == ErrorCode.PARSE_ERROR
        assert len(provider.calls) == 1

    def test_valid_json_with_code_fences_in_html(self):
        payload = {"html": "<p>例:</p><pre>```\nprint(1)\n```</pre>"}
        result = call_model(FakeProvider([json.dumps(payload, ensure_ascii=False)]), "sys", "user", CONFIG)
        assert result.ok
        assert result.data == payload
