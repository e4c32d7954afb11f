"""OpenAI client tests — JSON helpers, citation parsing, HTTP behaviour (mocked transport)."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest

from app.config import AuditConfig
from app.services.openai_client import (
    GenerationError,
    OpenAIClient,
    collect_citation_urls,
    get_openai_key,
    safe_json_parse,
    sanitize_json,
)


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------

class TestJsonHelpers:
    def test_sanitize_strips_fences_and_prose(self):
        raw = 'Sure! Here it is:\n```json\n{"a": [1, 2,],}\n```\nAnything else?'
        assert json.loads(sanitize_json(raw)) == {"a": [1, 2]}

    def test_sanitize_without_object_raises(self):
        with pytest.raises(ValueError):
            sanitize_json("no braces here")

    @pytest.mark.parametrize("raw", [None, "", "   ", "plain text", "[1, 2, 3]", "{broken"])
    def test_safe_parse_never_raises(self, raw):
        assert safe_json_parse(raw) is None

    def test_safe_parse_handles_bom(self):
        assert safe_json_parse('\ufeff{"ok": true}') == {"ok": True}


# ---------------------------------------------------------------------------
# Grounding metadata
# ---------------------------------------------------------------------------

def test_collect_citation_urls_from_objects_and_dicts():
    response = SimpleNamespace(
        output=[
            SimpleNamespace(type="web_search_call"),
            SimpleNamespace(
                type="message",
                content=[
                    SimpleNamespace(
                        annotations=[
                            SimpleNamespace(type="url_citation", url="https://a.example.com"),
                            SimpleNamespace(type="file_citation", url="ignored"),
                            {"type": "url_citation", "url": "https://b.example.com"},
                            {"type": "url_citation", "url": "https://a.example.com"},
                        ]
                    ),
                    SimpleNamespace(annotations=None),
                ],
            ),
        ]
    )
    assert collect_citation_urls(response) == ["https://a.example.com", "https://b.example.com"]


def test_collect_citation_urls_empty_response():
    assert collect_citation_urls(SimpleNamespace(output=None)) == []


def test_missing_key_raises():
    with patch.dict(os.environ, {"OPENAI_API_KEY": ""}):
        with pytest.raises(EnvironmentError):
            get_openai_key()


# ---------------------------------------------------------------------------
# Client calls
# ---------------------------------------------------------------------------

def _sdk_stub(response=None):
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        return response

    async def close():
        return None

    return SimpleNamespace(responses=SimpleNamespace(create=create), close=close), calls


def _client(handler, sdk=None):
    config = AuditConfig(model="test-model", research_model="test-research")
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    stub, _ = _sdk_stub()
    return OpenAIClient(api_key="sk-test", config=config, http_client=http, sdk_client=sdk or stub)


def test_generate_json_sends_json_mode_request():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": ' {"ok": true} '}}],
                "usage": {"prompt_tokens": 10, "completion_tokens": 3},
            },
        )

    async def go():
        client = _client(handler)
        try:
            return await client.generate_json("extract please", max_output_tokens=123)
        finally:
            await client.aclose()

    result = asyncio.run(go())
    assert result.text == '{"ok": true}'
    assert result.source_urls == []
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "test-model"
    assert seen["body"]["max_tokens"] == 123
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert seen["body"]["messages"][-1]["content"] == "extract please"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="upstream exploded"),
        httpx.Response(200, json={"choices": []}),
    ],
)
def test_generate_json_errors(response):
    async def go():
        client = _client(lambda request: response)
        try:
            await client.generate_json("x")
        finally:
            await client.aclose()

    with pytest.raises(GenerationError):
        asyncio.run(go())


def test_generate_grounded_uses_web_search_tool():
    reply = SimpleNamespace(
        output_text="  Acme charges $129.  ",
        output=[
            {
                "type": "message",
                "content": [{"annotations": [{"type": "url_citation", "url": "https://acme.example.com"}]}],
            }
        ],
    )
    sdk, calls = _sdk_stub(reply)

    async def go():
        client = _client(lambda request: httpx.Response(404), sdk=sdk)
        try:
            return await client.generate_grounded("find plumbers")
        finally:
            await client.aclose()

    result = asyncio.run(go())
    assert result.text == "Acme charges $129."
    assert result.source_urls == ["https://acme.example.com"]
    assert calls[0]["model"] == "test-research"
    assert calls[0]["tools"] == [{"type": "web_search_preview"}]
    assert calls[0]["input"] == "find plumbers"
