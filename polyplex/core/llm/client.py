"""Completion gateway.

Provides a uniform, role-based interface over interchangeable text-completion
providers through a single ``LLMClient`` class.  Supported providers:

  - ``openai`` -- OpenAI GPT
  - ``anthropic`` -- Anthropic Claude
  - ``gemini`` -- Google Gemini (REST)
  - ``lmstudio`` -- LM Studio local server (OpenAI-compatible)
  - ``deepseek``, ``ollama``, ``together``, ``groq`` ... -- OpenAI-compatible
    services with well-known base URLs
  - ``openai_compatible`` -- Any OpenAI-compatible API with a custom base_url

Callers name a :class:`~polyplex.core.llm.roles.Role`; the system prompt and
temperature for that role come from :data:`ROLE_PROFILES`.
"""

from __future__ import annotations

from typing import Protocol

from polyplex.config import Settings
from polyplex.core.llm.roles import JSON_INSTRUCTION, ROLE_PROFILES, Role
from polyplex.utils.exceptions import ProviderError
from polyplex.utils.logging import get_logger

# Well-known OpenAI-compatible providers and their default base URLs.
_KNOWN_COMPATIBLE_PROVIDERS: dict[str, str] = {
    "deepseek": "https://api.deepseek.com",
    "ollama": "http://localhost:11434/v1",
    "together": "https://api.together.xyz/v1",
    "groq": "https://api.groq.com/openai/v1",
}

# Providers that run locally and accept any key.
_LOCAL_PROVIDERS: frozenset[str] = frozenset({"lmstudio", "ollama"})

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o",
    "anthropic": "claude-sonnet-4-20250514",
    "gemini": "gemini-2.0-flash",
    "lmstudio": "local-model",
    "deepseek": "deepseek-chat",
    "ollama": "llama3",
}


class CompletionGateway(Protocol):
    """Anything that can answer a role-based completion request."""

    async def complete(self, role: Role, user: str) -> str:
        ...


class LLMClient:
    """Unified LLM client that delegates to a provider-specific backend.

    Parameters
    ----------
    provider:
        Provider name -- ``"openai"``, ``"anthropic"``, ``"gemini"``,
        ``"lmstudio"``, ``"openai_compatible"``, or any key in the
        well-known providers registry.
    api_key:
        API key for the chosen provider.
    model:
        Model identifier.  Falls back to the provider default when empty.
    base_url:
        Optional base URL.  Required for ``openai_compatible`` and
        ``lmstudio``; overrides the default for well-known compatible
        providers.
    """

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str = "",
        base_url: str | None = None,
        timeout: float = 120.0,
        max_tokens: int | None = None,
    ):
        self.provider = provider
        self.api_key = api_key
        self.model = model or DEFAULT_MODELS.get(provider, "")
        self.base_url = base_url
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.logger = get_logger("llm")
        self._provider_client = self._init_provider()

    def _init_provider(self):
        """Instantiate the appropriate provider backend."""
        if self.provider == "anthropic":
            from polyplex.core.llm.providers.anthropic_provider import AnthropicProvider

            return AnthropicProvider(self.api_key, self.model, self.timeout, self.max_tokens)

        if self.provider == "openai":
            from polyplex.core.llm.providers.openai_provider import OpenAIProvider

            return OpenAIProvider(self.api_key, self.model, self.timeout, self.max_tokens)

        if self.provider == "gemini":
            from polyplex.core.llm.providers.gemini_provider import GeminiProvider

            return GeminiProvider(self.api_key, self.model, self.timeout, self.max_tokens)

        if (
            self.provider in _KNOWN_COMPATIBLE_PROVIDERS
            or self.provider in ("lmstudio", "openai_compatible")
        ):
            from polyplex.core.llm.providers.openai_compatible_provider import (
                OpenAICompatibleProvider,
            )

            base_url = self.base_url or _KNOWN_COMPATIBLE_PROVIDERS.get(self.provider, "")
            if not base_url:
                raise ProviderError(
                    self.provider,
                    "base_url is required for this provider. "
                    "Set LLM_BASE_URL (or LMSTUDIO_URL) in your .env file.",
                )
            return OpenAICompatibleProvider(
                api_key=self.api_key,
                model=self.model,
                base_url=base_url,
                provider_name=self.provider,
                timeout=self.timeout,
                max_tokens=self.max_tokens,
            )

        raise ProviderError(
            self.provider,
            f"Unknown provider: {self.provider}. "
            f"Supported: openai, anthropic, gemini, lmstudio, "
            f"{', '.join(_KNOWN_COMPATIBLE_PROVIDERS.keys())}, openai_compatible",
        )

    async def complete(self, role: Role, user: str) -> str:
        """Run one completion for *role* and return the text response.

        Raises :class:`ProviderError` on provider failures.
        """
        profile = ROLE_PROFILES[role]
        system = profile.system + JSON_INSTRUCTION if profile.json_output else profile.system
        self.logger.info(
            "llm_complete",
            provider=self.provider,
            model=self.model,
            role=role.value,
            user_len=len(user),
        )
        try:
            result = await self._provider_client.complete(
                system,
                user,
                temperature=profile.temperature,
                json_mode=profile.json_output,
            )
        except ProviderError:
            raise
        except Exception as exc:
            self.logger.error("llm_complete_error", role=role.value, error=str(exc))
            raise ProviderError(self.provider, str(exc)) from exc
        self.logger.info("llm_complete_success", role=role.value, response_len=len(result))
        return result


class GatewayFactory:
    """Builds and caches one :class:`LLMClient` per (provider, model) pair.

    Credentials come from :class:`~polyplex.config.Settings`; tasks only
    carry the provider name and an optional model.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._clients: dict[tuple[str, str], LLMClient] = {}

    def _provider_keys(self) -> dict[str, str]:
        return {
            "openai": self.settings.openai_api_key,
            "anthropic": self.settings.anthropic_api_key,
            "gemini": self.settings.gemini_api_key,
            "deepseek": self.settings.deepseek_api_key,
        }

    def resolve_api_key(self, provider: str) -> str:
        """Pick the API key for *provider*.

        Resolution order:
          1. Provider-specific key (``OPENAI_API_KEY``, ``ANTHROPIC_API_KEY``,
             ``GEMINI_API_KEY``, ``DEEPSEEK_API_KEY``)
          2. Generic ``LLM_API_KEY``
        """
        key = self._provider_keys().get(provider, "")
        return key or self.settings.llm_api_key

    def _base_url(self, provider: str) -> str | None:
        if provider == "lmstudio":
            return self.settings.lmstudio_url.rstrip("/") + "/v1"
        if provider == "openai_compatible" or (
            self.settings.llm_base_url and provider in _KNOWN_COMPATIBLE_PROVIDERS
        ):
            return self.settings.llm_base_url or None
        return None

    def get(self, provider: str, model: str | None = None) -> LLMClient:
        """Return a cached client for *provider*/*model*, creating it on first use."""
        cache_key = (provider, model or "")
        client = self._clients.get(cache_key)
        if client is None:
            client = LLMClient(
                provider,
                self.resolve_api_key(provider),
                model or "",
                base_url=self._base_url(provider),
                timeout=self.settings.llm_timeout_seconds,
                max_tokens=self.settings.llm_max_tokens,
            )
            self._clients[cache_key] = client
        return client

    def availability(self) -> dict[str, bool]:
        """Report which providers can be used with the current credentials."""
        available = {name: bool(self.resolve_api_key(name)) for name in self._provider_keys()}
        for name in _LOCAL_PROVIDERS:
            available[name] = True
        available["openai_compatible"] = bool(self.settings.llm_base_url)
        return available
