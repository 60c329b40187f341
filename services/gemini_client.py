"""HTTP client for the Gemini image generation endpoint."""
from __future__ import annotations

import os
import threading
from typing import Any, Dict, Iterable, Optional

import httpx

from config import GEMINI_API_KEY, GEMINI_API_URL, GEMINI_TIMEOUT_S
from jobs.errors import UpstreamError
from observability.logger import get_logger

LOGGER = get_logger("imagegen.services.gemini")

_HTTP_CLIENT_LIMITS = httpx.Limits(
    max_connections=32,
    max_keepalive_connections=16,
    keepalive_expiry=120.0,
)


def build_generate_payload(prompt: str, aspect_ratio: str) -> Dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "responseModalities": ["IMAGE"],
            "imageConfig": {"aspectRatio": aspect_ratio},
        },
    }


def _iter_parts(data: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    first = candidates[0]
    if not isinstance(first, dict):
        return []
    content = first.get("content")
    if not isinstance(content, dict):
        return []
    parts = content.get("parts")
    if not isinstance(parts, list):
        return []
    return [part for part in parts if isinstance(part, dict)]


def extract_image_data(data: Dict[str, Any]) -> Optional[str]:
    """Return the base64 data of the first inline image part, if any."""

    for part in _iter_parts(data):
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict):
            value = inline.get("data")
            if isinstance(value, str) and value:
                return value
    return None


def _extract_error_message(response: httpx.Response) -> str:
    message = ""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error_block = payload.get("error")
        if isinstance(error_block, dict):
            message = str(error_block.get("message", ""))
    if not message:
        message = response.text or ""
    return message.strip()


def _describe_block_reason(data: Dict[str, Any]) -> str:
    feedback = data.get("promptFeedback")
    if isinstance(feedback, dict) and feedback.get("blockReason"):
        return f" (blocked: {feedback['blockReason']})"
    for part in _iter_parts(data):
        text = part.get("text")
        if isinstance(text, str) and text.strip():
            return f" (model replied with text: {text.strip()[:120]})"
    return ""


class GeminiImageClient:
    """Issues one ``generateContent`` call per image; never retries."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = GEMINI_API_URL,
        timeout_s: float = GEMINI_TIMEOUT_S,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._http_client = http_client
        self._client_lock = threading.Lock()

    def _resolve_api_key(self) -> str:
        api_key = (self._api_key or os.getenv("GEMINI_API_KEY") or GEMINI_API_KEY or "").strip()
        if not api_key:
            raise UpstreamError("GEMINI_API_KEY is not set; cannot call the image generation service")
        return api_key

    def _acquire_http_client(self) -> httpx.Client:
        with self._client_lock:
            if self._http_client is None:
                timeout = httpx.Timeout(
                    timeout=self._timeout_s,
                    connect=min(20.0, self._timeout_s),
                )
                self._http_client = httpx.Client(timeout=timeout, limits=_HTTP_CLIENT_LIMITS)
            return self._http_client

    def close(self) -> None:
        with self._client_lock:
            if self._http_client is not None:
                self._http_client.close()
                self._http_client = None

    def generate(self, prompt: str, aspect_ratio: str, model: str) -> str:
        """Generate one image and return it as base64 text."""

        api_key = self._resolve_api_key()
        url = f"{self._base_url}/models/{model}:generateContent"
        headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}
        payload = build_generate_payload(prompt, aspect_ratio)
        client = self._acquire_http_client()

        LOGGER.info("gemini_request", extra={"model": model, "aspect_ratio": aspect_ratio, "prompt_len": len(prompt)})
        try:
            response = client.post(url, headers=headers, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            detail = _extract_error_message(exc.response)
            message = f"Gemini API error: HTTP {status_code}"
            if detail:
                message = f"{message}: {detail}"
            raise UpstreamError(message) from exc
        except httpx.TimeoutException as exc:
            raise UpstreamError(f"Gemini API request timed out after {self._timeout_s:g}s") from exc
        except httpx.TransportError as exc:
            raise UpstreamError(f"Network error while calling Gemini API: {exc}") from exc
        except ValueError as exc:
            raise UpstreamError("Gemini API returned a response that is not valid JSON") from exc

        if not isinstance(data, dict):
            raise UpstreamError("Gemini API returned an unexpected response format")
        image_data = extract_image_data(data)
        if not image_data:
            raise UpstreamError("No image data in response" + _describe_block_reason(data))
        return image_data


__all__ = ["GeminiImageClient", "build_generate_payload", "extract_image_data"]
