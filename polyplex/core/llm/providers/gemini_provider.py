"""Google Gemini provider for the completion gateway.

Talks to the ``generateContent`` REST endpoint directly with ``httpx``.
"""

from __future__ import annotations

import httpx

from polyplex.utils.exceptions import ProviderError
from polyplex.utils.logging import get_logger

logger = get_logger("llm.gemini")

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider:
    """Provider implementation for Gemini models.

    Parameters
    ----------
    api_key:
        Google AI Studio API key.
    model:
        Model identifier, e.g. ``"gemini-2.0-flash"``.
    """

    MAX_TOKENS = 4096

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 120.0,
        max_tokens: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ProviderError("gemini", "API key is required but was empty.")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens or self.MAX_TOKENS
        self._transport = transport

    async def complete(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        """Call ``models/{model}:generateContent`` and return the first candidate's text."""
        generation_config: dict = {
            "temperature": temperature,
            "maxOutputTokens": self.max_tokens,
        }
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        payload = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "generationConfig": generation_config,
        }
        url = f"{GEMINI_BASE_URL}/models/{self.model}:generateContent"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=payload)
            if response.status_code >= 400:
                raise ProviderError("gemini", f"HTTP {response.status_code}: {response.text[:500]}")
            data = response.json()
            candidates = data.get("candidates") or []
            if not candidates:
                return ""
            parts = (candidates[0].get("content") or {}).get("parts") or []
            return "".join(part.get("text", "") for part in parts)
        except ProviderError:
            raise
        except Exception as exc:
            logger.error("gemini_complete_error", error=str(exc))
            raise ProviderError("gemini", str(exc)) from exc
