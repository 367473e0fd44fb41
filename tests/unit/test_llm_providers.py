"""Tests for the multi-provider completion gateway."""
import json

import httpx
import pytest

from polyplex.core.llm.client import GatewayFactory, LLMClient
from polyplex.core.llm.roles import JSON_INSTRUCTION, ROLE_PROFILES, Role
from polyplex.utils.exceptions import ProviderError


class TestLLMClientProviderSelection:
    """Verify that LLMClient correctly instantiates different providers."""

    def test_anthropic_requires_key(self):
        with pytest.raises(ProviderError, match="API key is required"):
            LLMClient("anthropic", "", "claude-sonnet-4-20250514")

    def test_openai_requires_key(self):
        with pytest.raises(ProviderError, match="API key is required"):
            LLMClient("openai", "", "gpt-4o")

    def test_gemini_requires_key(self):
        with pytest.raises(ProviderError, match="API key is required"):
            LLMClient("gemini", "")

    def test_lmstudio_needs_no_key(self):
        client = LLMClient("lmstudio", "", base_url="http://localhost:1234/v1")
        assert client.model == "local-model"
        assert client._provider_client.provider_name == "lmstudio"

    def test_lmstudio_without_base_url_raises(self):
        with pytest.raises(ProviderError, match="base_url is required"):
            LLMClient("lmstudio", "")

    def test_known_compatible_providers(self):
        for provider in ("deepseek", "ollama", "together", "groq"):
            client = LLMClient(provider, "test-key")
            assert client.provider == provider
            assert client._provider_client is not None

    def test_openai_compatible_with_base_url(self):
        client = LLMClient("openai_compatible", "test-key", "my-model", base_url="http://my-server:8080/v1")
        assert client.provider == "openai_compatible"

    def test_openai_compatible_without_base_url_raises(self):
        with pytest.raises(ProviderError, match="base_url is required"):
            LLMClient("openai_compatible", "test-key", "my-model")

    def test_unknown_provider_raises(self):
        with pytest.raises(ProviderError, match="Unknown provider"):
            LLMClient("nonexistent", "key", "model")


class _EchoProvider:
    def __init__(self, reply="ok", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def complete(self, system, user, *, temperature=0.7, json_mode=False):
        self.calls.append({"system": system, "user": user, "temperature": temperature, "json_mode": json_mode})
        if self.error:
            raise self.error
        return self.reply


class TestLLMClientComplete:
    @pytest.mark.asyncio
    async def test_role_profile_is_applied(self):
        client = LLMClient("ollama", "none")
        client._provider_client = _EchoProvider(reply='{"score": 90}')

        assert await client.complete(Role.CRITIQUE, "review this") == '{"score": 90}'

        (call,) = client._provider_client.calls
        profile = ROLE_PROFILES[Role.CRITIQUE]
        assert call["system"] == profile.system + JSON_INSTRUCTION
        assert call["temperature"] == profile.temperature
        assert call["json_mode"] is True

    @pytest.mark.asyncio
    async def test_text_roles_skip_json_mode(self):
        client = LLMClient("ollama", "none")
        client._provider_client = _EchoProvider()

        await client.complete(Role.IMPLEMENT, "write it")

        assert client._provider_client.calls[0]["json_mode"] is False

    @pytest.mark.asyncio
    async def test_unexpected_errors_become_provider_errors(self):
        client = LLMClient("ollama", "none")
        client._provider_client = _EchoProvider(error=RuntimeError("socket closed"))

        with pytest.raises(ProviderError, match="socket closed"):
            await client.complete(Role.DESIGN, "x")


class TestGeminiProvider:
    @pytest.mark.asyncio
    async def test_generate_content(self):
        from polyplex.core.llm.providers.gemini_provider import GeminiProvider

        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "hi"}]}}]})

        provider = GeminiProvider("key", "gemini-2.0-flash", transport=httpx.MockTransport(handler))
        result = await provider.complete("sys", "user", temperature=0.1, json_mode=True)

        assert result == "hi"
        assert "models/gemini-2.0-flash:generateContent" in seen["url"]
        assert seen["body"]["generationConfig"]["responseMimeType"] == "application/json"
        assert seen["body"]["systemInstruction"]["parts"][0]["text"] == "sys"

    @pytest.mark.asyncio
    async def test_http_error(self):
        from polyplex.core.llm.providers.gemini_provider import GeminiProvider

        transport = httpx.MockTransport(lambda request: httpx.Response(403, text="forbidden"))
        provider = GeminiProvider("key", "gemini-2.0-flash", transport=transport)

        with pytest.raises(ProviderError, match="HTTP 403"):
            await provider.complete("sys", "user")


class TestOpenAICompatibleProvider:
    def test_init_without_base_url_raises(self):
        from polyplex.core.llm.providers.openai_compatible_provider import OpenAICompatibleProvider

        with pytest.raises(ProviderError, match="base_url is required"):
            OpenAICompatibleProvider("key", "model", "")

    def test_init_without_key_uses_none(self):
        from polyplex.core.llm.providers.openai_compatible_provider import OpenAICompatibleProvider

        provider = OpenAICompatibleProvider("", "llama3", "http://localhost:11434/v1", "ollama")
        assert provider.model == "llama3"
        assert provider.provider_name == "ollama"


class TestGatewayFactory:
    def test_clients_are_cached_per_provider_and_model(self, settings):
        factory = GatewayFactory(settings)
        first = factory.get("lmstudio")
        assert factory.get("lmstudio") is first
        assert factory.get("lmstudio", "other-model") is not first

    def test_lmstudio_url(self, settings):
        settings.lmstudio_url = "http://box:1234/"
        client = GatewayFactory(settings).get("lmstudio")
        assert client.base_url == "http://box:1234/v1"

    def test_generic_key_fallback(self, settings):
        settings.llm_api_key = "generic"
        settings.anthropic_api_key = "specific"
        factory = GatewayFactory(settings)
        assert factory.resolve_api_key("openai") == "generic"
        assert factory.resolve_api_key("anthropic") == "specific"

    def test_availability(self, settings):
        settings.gemini_api_key = "g"
        available = GatewayFactory(settings).availability()
        assert available["gemini"] is True
        assert available["openai"] is False
        assert available["lmstudio"] is True
        assert available["openai_compatible"] is False

    def test_missing_key_fails_on_get(self, settings):
        with pytest.raises(ProviderError):
            GatewayFactory(settings).get("openai")
