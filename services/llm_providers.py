"""
LLM provider clients behind a single `generate(prompt) -> text` interface.

This service provides:
- Google Gemini (generateContent REST endpoint), the default provider
- Groq and OpenAI (OpenAI-compatible chat completions endpoints)
- Explicit provider selection by name; the shape of the API key is never inspected

All calls are single, non-streaming aiohttp requests. Any transport or payload problem is
raised as LLMError so the course generator can degrade to canned content.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import aiohttp

from core.config import Settings, get_settings

logger = logging.getLogger("llm_providers")


class LLMError(Exception):
    """Raised when a provider call fails or returns no usable text."""


class UnknownProviderError(ValueError):
    pass


class LLMProvider(ABC):
    name: str = ""

    def __init__(self, api_key: str, model: str, timeout: int = 30, temperature: float = 0.3):
        if not api_key:
            raise LLMError(f"No API key configured for {self.name}")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.temperature = temperature

    @abstractmethod
    def _request(self, prompt: str) -> tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return (url, headers, json body) for one generation call."""

    @abstractmethod
    def _extract_text(self, payload: Dict[str, Any]) -> str:
        """Pull the generated text out of a decoded response body."""

    async def generate(self, prompt: str) -> str:
        url, headers, body = self._request(prompt)
        start_time = asyncio.get_event_loop().time()
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=body, headers=headers) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"{self.name} API error {response.status}: {error_text[:200]}")
                        raise LLMError(f"{self.name} API error {response.status}: {error_text[:200]}")
                    payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            logger.error(f"{self.name} API timeout")
            raise LLMError(f"{self.name} request timeout") from e
        except aiohttp.ClientError as e:
            logger.error(f"{self.name} API call failed: {e}")
            raise LLMError(f"{self.name} API call failed: {e}") from e
        except ValueError as e:
            raise LLMError(f"{self.name} returned a non-JSON body: {e}") from e

        try:
            text = self._extract_text(payload)
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Unexpected {self.name} response shape: {e}") from e
        if not text or not text.strip():
            raise LLMError(f"No content in {self.name} response")

        elapsed = (asyncio.get_event_loop().time() - start_time) * 1000
        logger.info(f"{self.name} call completed in {elapsed:.0f}ms", extra={"provider": self.name})
        return text


class GeminiProvider(LLMProvider):
    name = "gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def _request(self, prompt: str):
        url = f"{self.base_url}/models/{self.model}:generateContent"
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": self.temperature},
        }
        return url, headers, body

    def _extract_text(self, payload: Dict[str, Any]) -> str:
        candidates = payload.get("candidates") or []
        if not candidates:
            return ""
        content = candidates[0]["content"]
        # Handle different response formats
        if "parts" in content and content["parts"]:
            return "".join(part.get("text", "") for part in content["parts"])
        return content.get("text", "")


class OpenAICompatibleProvider(LLMProvider):
    base_url = ""

    def _request(self, prompt: str):
        url = f"{self.base_url}/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": "You are a helpful assistant that designs courses and answers in JSON."},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "stream": False,
        }
        return url, headers, body

    def _extract_text(self, payload: Dict[str, Any]) -> str:
        return payload["choices"][0]["message"]["content"] or ""


class GroqProvider(OpenAICompatibleProvider):
    name = "groq"
    base_url = "https://api.groq.com/openai/v1"


class OpenAIProvider(OpenAICompatibleProvider):
    name = "openai"
    base_url = "https://api.openai.com/v1"


_PROVIDERS = {
    "gemini": (GeminiProvider, "gemini_model"),
    "groq": (GroqProvider, "groq_model"),
    "openai": (OpenAIProvider, "openai_model"),
}

LLMFactory = Callable[[Optional[str], Optional[str]], Optional[LLMProvider]]


def resolve_provider_name(provider: Optional[str], settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    name = (provider or settings.llm_provider or "gemini").lower()
    if name not in _PROVIDERS:
        raise UnknownProviderError(f"Unknown LLM provider: {name}")
    return name


def create_llm_provider(
    provider: Optional[str],
    api_key: Optional[str],
    settings: Optional[Settings] = None,
) -> Optional[LLMProvider]:
    """Build the named provider, or return None when no API key is available for it."""
    settings = settings or get_settings()
    name = resolve_provider_name(provider, settings)
    key = api_key or settings.api_key_for(name)
    if not key:
        logger.info(f"No API key available for {name}", extra={"provider": name})
        return None
    cls, model_field = _PROVIDERS[name]
    return cls(api_key=key, model=getattr(settings, model_field), timeout=settings.llm_timeout)


def get_llm_factory() -> LLMFactory:
    """FastAPI dependency returning the provider factory (overridden in tests)."""
    return create_llm_provider
