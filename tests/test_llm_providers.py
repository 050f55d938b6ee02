import pytest

from core.config import Settings
from services import llm_providers
from services.llm_providers import (
    GeminiProvider,
    GroqProvider,
    LLMError,
    OpenAIProvider,
    UnknownProviderError,
    create_llm_provider,
)


class FakeResponse:
    def __init__(self, status, payload=None, text=""):
        self.status = status
        self._payload = payload
        self._text = text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def text(self):
        return self._text

    async def json(self, content_type=None):
        if self._payload is None:
            raise ValueError("Expecting value")
        return self._payload


def fake_session(response, calls):
    class FakeSession:
        def __init__(self, timeout=None):
            self.timeout = timeout

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        def post(self, url, json=None, headers=None):
            calls.append({"url": url, "json": json, "headers": headers})
            return response

    return FakeSession


@pytest.fixture
def calls():
    return []


@pytest.mark.asyncio
async def test_gemini_request_and_text_extraction(monkeypatch, calls):
    payload = {"candidates": [{"content": {"parts": [{"text": '{"courseTitle": '}, {"text": '"Go"}'}]}}]}
    monkeypatch.setattr(llm_providers.aiohttp, "ClientSession", fake_session(FakeResponse(200, payload), calls))

    text = await GeminiProvider(api_key="g-key", model="gemini-2.5-flash").generate("Design a course")

    assert text == '{"courseTitle": "Go"}'
    assert calls[0]["url"].endswith("/models/gemini-2.5-flash:generateContent")
    assert calls[0]["headers"]["x-goog-api-key"] == "g-key"
    assert calls[0]["json"]["contents"][0]["parts"][0]["text"] == "Design a course"


@pytest.mark.asyncio
async def test_openai_compatible_request_and_text_extraction(monkeypatch, calls):
    payload = {"choices": [{"message": {"content": "hello"}}]}
    monkeypatch.setattr(llm_providers.aiohttp, "ClientSession", fake_session(FakeResponse(200, payload), calls))

    text = await GroqProvider(api_key="gsk-key", model="llama-3.1-8b-instant").generate("Say hello")

    assert text == "hello"
    assert calls[0]["url"] == "https://api.groq.com/openai/v1/chat/completions"
    assert calls[0]["headers"]["Authorization"] == "Bearer gsk-key"
    body = calls[0]["json"]
    assert body["model"] == "llama-3.1-8b-instant"
    assert body["messages"][-1] == {"role": "user", "content": "Say hello"}


@pytest.mark.asyncio
async def test_non_200_raises_llm_error(monkeypatch, calls):
    response = FakeResponse(429, text="rate limit exceeded")
    monkeypatch.setattr(llm_providers.aiohttp, "ClientSession", fake_session(response, calls))

    with pytest.raises(LLMError, match="429"):
        await OpenAIProvider(api_key="sk-key", model="gpt-4o-mini").generate("hi")


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    FakeResponse(200, {"candidates": []}),
    FakeResponse(200, {"unexpected": True}),
    FakeResponse(200, None),
])
async def test_empty_or_malformed_gemini_body_raises_llm_error(monkeypatch, calls, response):
    monkeypatch.setattr(llm_providers.aiohttp, "ClientSession", fake_session(response, calls))
    with pytest.raises(LLMError):
        await GeminiProvider(api_key="g-key", model="gemini-2.5-flash").generate("hi")


@pytest.mark.asyncio
async def test_malformed_openai_body_raises_llm_error(monkeypatch, calls):
    monkeypatch.setattr(llm_providers.aiohttp, "ClientSession", fake_session(FakeResponse(200, {"choices": []}), calls))
    with pytest.raises(LLMError, match="response shape"):
        await OpenAIProvider(api_key="sk-key", model="gpt-4o-mini").generate("hi")


def test_create_provider_uses_request_key_first():
    settings = Settings(groq_api_key="server-key")
    llm = create_llm_provider("groq", "request-key", settings)
    assert isinstance(llm, GroqProvider)
    assert llm.api_key == "request-key"


def test_create_provider_falls_back_to_server_side_key():
    settings = Settings(openai_api_key="server-key", openai_model="gpt-4o")
    llm = create_llm_provider("openai", None, settings)
    assert isinstance(llm, OpenAIProvider)
    assert llm.api_key == "server-key"
    assert llm.model == "gpt-4o"


def test_create_provider_defaults_to_configured_provider():
    settings = Settings(llm_provider="gemini", gemini_api_key="server-key")
    assert isinstance(create_llm_provider(None, None, settings), GeminiProvider)


def test_create_provider_without_any_key_returns_none():
    assert create_llm_provider("groq", None, Settings()) is None


def test_unknown_provider_is_rejected():
    with pytest.raises(UnknownProviderError):
        create_llm_provider("claude", "key", Settings())
