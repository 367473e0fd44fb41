"""Generic OpenAI-compatible provider for the completion gateway.

Supports any LLM service that exposes an OpenAI-compatible chat completions
API, including:
  - LM Studio (``http://localhost:1234/v1``)
  - Ollama (``http://localhost:11434/v1``)
  - DeepSeek (``https://api.deepseek.com``)
  - Together AI, Groq and other hosted gateways
"""

from __future__ import annotations

from polyplex.utils.exceptions import ProviderError
from polyplex.utils.logging import get_logger

logger = get_logger("llm.openai_compatible")


class OpenAICompatibleProvider:
    """Provider for any OpenAI-compatible API endpoint.

    Parameters
    ----------
    api_key:
        API key (pass an empty string for services that do not require
        authentication, e.g. local LM Studio).
    model:
        Model identifier.
    base_url:
        Base URL for the API (e.g. ``"http://localhost:1234/v1"``).
    provider_name:
        Human-readable name used in log messages and error reports.
    """

    MAX_TOKENS = 4096

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        provider_name: str = "openai_compatible",
        timeout: float = 120.0,
        max_tokens: int | None = None,
    ):
        try:
            import openai
        except ImportError as exc:
            raise ProviderError(
                provider_name,
                "The 'openai' package is required. "
                "Install it with: pip install openai",
            ) from exc

        if not base_url:
            raise ProviderError(provider_name, "base_url is required but was empty.")

        # Local services don't need a key.
        effective_key = api_key if api_key else "none"

        self.client = openai.AsyncOpenAI(api_key=effective_key, base_url=base_url, timeout=timeout)
        self.model = model
        self.provider_name = provider_name
        self.max_tokens = max_tokens or self.MAX_TOKENS

    async def _create(self, messages: list[dict], temperature: float, json_mode: bool):
        kwargs: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return await self.client.chat.completions.create(**kwargs)

    async def complete(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        """Call the remote API and return the assistant's text response.

        When *json_mode* is requested but the server rejects
        ``response_format``, the call is repeated without it.
        """
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]
        try:
            try:
                response = await self._create(messages, temperature, json_mode)
            except Exception:
                if not json_mode:
                    raise
                # Some endpoints don't support response_format; fall back.
                logger.debug("openai_compatible_no_json_mode", provider=self.provider_name)
                response = await self._create(messages, temperature, False)

            choice = response.choices[0] if response.choices else None
            if choice and choice.message and choice.message.content:
                return choice.message.content
            return ""
        except Exception as exc:
            logger.error(
                "openai_compatible_complete_error",
                provider=self.provider_name,
                error=str(exc),
            )
            raise ProviderError(self.provider_name, str(exc)) from exc
