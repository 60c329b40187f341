from __future__ import annotations

import json

import httpx
import pytest

from conftest import PNG_B64
from jobs.errors import UpstreamError
from services.gemini_client import GeminiImageClient, build_generate_payload, extract_image_data

BASE_URL = "https://gemini.test/v1beta"


def _client(handler, *, api_key="test-key") -> GeminiImageClient:
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return GeminiImageClient(api_key=api_key, base_url=BASE_URL, timeout_s=5, http_client=http_client)


def _image_response(data=PNG_B64, key="inlineData"):
    return {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "Here is your image"},
                        {key: {"mimeType": "image/png", "data": data}},
                    ]
                }
            }
        ]
    }


def test_generate_posts_expected_request():
    seen = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = dict(request.headers)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_image_response())

    result = _client(_handler).generate("a koi pond", "16:9", "gemini-2.5-flash-image")

    assert result == PNG_B64
    assert seen["url"] == f"{BASE_URL}/models/gemini-2.5-flash-image:generateContent"
    assert seen["headers"]["x-goog-api-key"] == "test-key"
    assert seen["body"] == build_generate_payload("a koi pond", "16:9")
    assert seen["body"]["generationConfig"]["imageConfig"] == {"aspectRatio": "16:9"}


def test_extract_image_data_accepts_snake_case_parts():
    assert extract_image_data(_image_response(key="inline_data")) == PNG_B64
    assert extract_image_data({"candidates": []}) is None
    assert extract_image_data({}) is None


def test_generate_without_image_data_raises():
    def _handler(request):
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "I can't draw that"}]}}]})

    with pytest.raises(UpstreamError) as excinfo:
        _client(_handler).generate("x", "1:1", "gemini-2.5-flash-image")
    assert "No image data in response" in excinfo.value.message
    assert "I can't draw that" in excinfo.value.message


def test_generate_reports_block_reason():
    def _handler(request):
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

    with pytest.raises(UpstreamError, match="SAFETY"):
        _client(_handler).generate("x", "1:1", "gemini-2.5-flash-image")


def test_generate_http_error_includes_service_message():
    def _handler(request):
        return httpx.Response(400, json={"error": {"code": 400, "message": "API key not valid"}})

    with pytest.raises(UpstreamError) as excinfo:
        _client(_handler).generate("x", "1:1", "gemini-2.5-flash-image")
    assert excinfo.value.message == "Gemini API error: HTTP 400: API key not valid"


def test_generate_timeout_is_upstream_error():
    def _handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UpstreamError, match="timed out"):
        _client(_handler).generate("x", "1:1", "gemini-2.5-flash-image")


def test_generate_transport_error_is_upstream_error():
    def _handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError, match="Network error"):
        _client(_handler).generate("x", "1:1", "gemini-2.5-flash-image")


def test_generate_non_json_body_is_upstream_error():
    def _handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(UpstreamError, match="not valid JSON"):
        _client(_handler).generate("x", "1:1", "gemini-2.5-flash-image")


def test_generate_without_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setattr("services.gemini_client.GEMINI_API_KEY", "")
    calls = []

    def _handler(request):
        calls.append(request)
        return httpx.Response(200, json=_image_response())

    with pytest.raises(UpstreamError, match="GEMINI_API_KEY"):
        _client(_handler, api_key=None).generate("x", "1:1", "gemini-2.5-flash-image")
    assert calls == []
