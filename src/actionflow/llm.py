from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol

import httpx

from actionflow.config import LLMSettings
from actionflow.errors import (
    ConfigurationError,
    EnvelopeError,
    LLMGatewayError,
    ResponseParseError,
    TransportError,
)

GEMINI_HOST_MARKER = "googleapis.com"
RETRY_DELAY_S = 0.5

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


@lru_cache(maxsize=1)
def _shared_http_client() -> httpx.Client:
    return httpx.Client()


@dataclass(frozen=True)
class LLMResponse:
    content: str
    model: str


class LLMClient(Protocol):
    def generate(
        self, prompt: str, *, temperature: float | None = None, json_mode: bool = True
    ) -> LLMResponse:
        ...


def _post(url: str, payload: dict[str, Any], timeout_s: float, provider: str, max_retries: int = 0) -> Any:
    client = _shared_http_client()
    attempts = max(0, max_retries) + 1
    response: httpx.Response | None = None
    for attempt in range(attempts):
        try:
            response = client.post(url, json=payload, timeout=timeout_s)
            break
        except httpx.TimeoutException as exc:
            if attempt >= attempts - 1:
                raise LLMGatewayError(f"{provider} request timed out: {exc}") from exc
            time.sleep(RETRY_DELAY_S * (attempt + 1))
        except httpx.HTTPError as exc:
            raise LLMGatewayError(f"{provider} request failed: {exc}") from exc
    if response is None:
        raise LLMGatewayError(f"{provider} request failed without response")
    if response.status_code < 200 or response.status_code >= 300:
        raise TransportError(provider, response.status_code, response.text)
    try:
        return response.json()
    except ValueError as exc:
        raise EnvelopeError(f"{provider} returned a non-JSON response body.") from exc


@dataclass(frozen=True)
class OllamaClient:
    base_url: str
    model: str
    timeout_s: float = 300.0
    default_temperature: float = 0.2
    max_retries: int = 0

    def generate(
        self, prompt: str, *, temperature: float | None = None, json_mode: bool = True
    ) -> LLMResponse:
        temp = temperature if temperature is not None else self.default_temperature
        if json_mode:
            url = f"{self.base_url.rstrip('/')}/api/chat"
            payload: dict[str, Any] = {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "format": "json",
                "stream": False,
                "options": {"temperature": temp},
            }
        else:
            url = f"{self.base_url.rstrip('/')}/api/generate"
            payload = {
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": temp},
            }
        data = _post(url, payload, self.timeout_s, "Ollama", self.max_retries)
        if json_mode:
            message = data.get("message") if isinstance(data, dict) else None
            content = message.get("content") if isinstance(message, dict) else None
        else:
            content = data.get("response") if isinstance(data, dict) else None
        if not isinstance(content, str):
            raise EnvelopeError("Received an invalid response structure from the Ollama API.")
        return LLMResponse(content=content, model=self.model)


@dataclass(frozen=True)
class GeminiClient:
    base_url: str
    api_key: str
    model: str
    timeout_s: float = 120.0
    default_temperature: float = 0.2
    max_retries: int = 0

    def generate(
        self, prompt: str, *, temperature: float | None = None, json_mode: bool = True
    ) -> LLMResponse:
        url = f"{self.base_url.rstrip('/')}/{self.model}:generateContent?key={self.api_key}"
        generation_config: dict[str, Any] = {
            "temperature": temperature if temperature is not None else self.default_temperature,
        }
        if json_mode:
            generation_config["response_mime_type"] = "application/json"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        data = _post(url, payload, self.timeout_s, "Gemini", self.max_retries)
        try:
            content = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str):
            raise EnvelopeError("Received an invalid response structure from the Gemini API.")
        return LLMResponse(content=content, model=self.model)


def is_gemini_url(base_url: str) -> bool:
    return GEMINI_HOST_MARKER in base_url


def build_llm_client(settings: LLMSettings) -> LLMClient:
    if not settings.model:
        raise ConfigurationError("LLM_MODEL_NAME environment variable not set.")
    if is_gemini_url(settings.base_url):
        if not settings.api_key:
            raise ConfigurationError("LLM_API_KEY environment variable is required for Gemini.")
        return GeminiClient(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            timeout_s=settings.timeout_s,
        )
    return OllamaClient(base_url=settings.base_url, model=settings.model, timeout_s=settings.timeout_s)


def strip_code_fence(text: str) -> str:
    raw = text.strip()
    match = _FENCE_RE.match(raw)
    if match:
        return match.group(1).strip()
    return raw


def parse_json_text(text: str) -> Any:
    raw = strip_code_fence(text)
    if not raw:
        raise ResponseParseError("Model returned an empty response.")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Model output is not valid JSON: {exc}") from exc


@dataclass(frozen=True)
class LLMGateway:
    """Normalizes both backends into parsed JSON or plain text."""

    client: LLMClient

    def request_json(self, prompt: str, *, temperature: float | None = None) -> Any:
        response = self.client.generate(prompt, temperature=temperature, json_mode=True)
        return parse_json_text(response.content)

    def request_text(self, prompt: str, *, temperature: float | None = None) -> str:
        response = self.client.generate(prompt, temperature=temperature, json_mode=False)
        return response.content
