"""Anthropic Claude provider for the completion gateway.

Wraps the async ``anthropic`` SDK to expose the ``complete`` coroutine
expected by :class:`~polyplex.core.llm.client.LLMClient`.
"""

from __future__ import annotations

from polyplex.utils.exceptions import ProviderError
from polyplex.utils.logging import get_logger

logger = get_logger("llm.anthropic")


class AnthropicProvider:
    """Provider implementation for Anthropic Claude models.

    Parameters
    ----------
    api_key:
        Anthropic API key.
    model:
        Model identifier, e.g. ``"claude-sonnet-4-20250514"``.
    """

    MAX_TOKENS = 4096

    def __init__(self, api_key: str, model: str, timeout: float = 120.0, max_tokens: int | None = None):
        try:
            import anthropic
        except ImportError as exc:
            raise ProviderError(
                "anthropic",
                "The 'anthropic' package is not installed. "
                "Install it with: pip install anthropic",
            ) from exc

        if not api_key:
            raise ProviderError("anthropic", "API key is required but was empty.")

        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)
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
        """Call Claude and return the assistant's text response.

        Claude has no JSON response mode; *json_mode* is carried by the
        system prompt alone.
        """
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
            # Concatenate the text blocks.
            parts = [block.text for block in message.content if getattr(block, "type", "") == "text"]
            return "".join(parts)
        except Exception as exc:
            logger.error("anthropic_complete_error", error=str(exc))
            raise ProviderError("anthropic", str(exc)) from exc
