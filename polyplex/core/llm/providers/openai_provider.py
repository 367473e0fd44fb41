"""OpenAI provider for the completion gateway.

Wraps the async ``openai`` SDK to expose the ``complete`` coroutine expected
by :class:`~polyplex.core.llm.client.LLMClient`.
"""

from __future__ import annotations

from polyplex.utils.exceptions import ProviderError
from polyplex.utils.logging import get_logger

logger = get_logger("llm.openai")


class OpenAIProvider:
    """Provider implementation for OpenAI models.

    Parameters
    ----------
    api_key:
        OpenAI API key.
    model:
        Model identifier, e.g. ``"gpt-4o"``.
    """

    MAX_TOKENS = 4096

    def __init__(self, api_key: str, model: str, timeout: float = 120.0, max_tokens: int | None = None):
        try:
            import openai
        except ImportError as exc:
            raise ProviderError(
                "openai",
                "The 'openai' package is not installed. "
                "Install it with: pip install openai",
            ) from exc

        if not api_key:
            raise ProviderError("openai", "API key is required but was empty.")

        self.client = openai.AsyncOpenAI(api_key=api_key, timeout=timeout)
        self.model = model
        self.max_tokens = max_tokens or self.MAX_TOKENS

    async def complete(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        """Call the chat completions API and return the text response.

        ``response_format`` is set to ``json_object`` when *json_mode* is on.
        """
        kwargs: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = await self.client.chat.completions.create(**kwargs)
            choice = response.choices[0] if response.choices else None
            if choice and choice.message and choice.message.content:
                return choice.message.content
            return ""
        except Exception as exc:
            logger.error("openai_complete_error", error=str(exc))
            raise ProviderError("openai", str(exc)) from exc
