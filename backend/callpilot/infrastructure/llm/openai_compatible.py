"""
OpenAI-Compatible LLM Provider
Chat completions over HTTP for OpenAI and OpenRouter
"""
import logging
from typing import List, Optional

import httpx

from callpilot.domain.interfaces.llm_provider import LLMProvider
from callpilot.domain.models.conversation import Turn
from callpilot.domain.models.tenant_config import LLMConfig

logger = logging.getLogger(__name__)


class OpenAICompatibleLLMProvider(LLMProvider):
    """
    Provider for any endpoint speaking the OpenAI chat-completions protocol.

    Subclasses only set the base URL, default model and provider name.
    """

    API_BASE_URL = "https://api.openai.com/v1"
    DEFAULT_MODEL = "gpt-4o-mini"
    PROVIDER_NAME = "openai"
    REQUEST_TIMEOUT = 30.0

    def __init__(self):
        self._api_key: Optional[str] = None
        self._model: str = self.DEFAULT_MODEL
        self._temperature: float = 0.6
        self._max_tokens: int = 75

    async def initialize(self, config: LLMConfig) -> None:
        self._api_key = config.api_key
        self._model = config.model or self.DEFAULT_MODEL
        self._temperature = config.temperature
        self._max_tokens = config.max_tokens

    def _get_auth_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def generate(
        self,
        messages: List[Turn],
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        if not self._api_key:
            raise RuntimeError(f"{self.PROVIDER_NAME} provider not initialized. Call initialize() first.")

        chat_messages = []
        if system_prompt:
            chat_messages.append({"role": "system", "content": system_prompt})
        chat_messages.extend({"role": m.role, "content": m.content} for m in messages)

        payload = {
            "model": self._model,
            "messages": chat_messages,
            "temperature": temperature if temperature is not None else self._temperature,
            "max_tokens": max_tokens if max_tokens is not None else self._max_tokens,
        }

        async with httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT) as client:
            response = await client.post(
                f"{self.API_BASE_URL}/chat/completions",
                json=payload,
                headers=self._get_auth_headers(),
            )

            if response.status_code != 200:
                logger.error(f"{self.PROVIDER_NAME} completion failed: HTTP {response.status_code}")
                raise ValueError(f"{self.PROVIDER_NAME} completion failed: HTTP {response.status_code}")

            data = response.json()

        choices = data.get("choices") or []
        if not choices:
            raise ValueError(f"{self.PROVIDER_NAME} returned no choices")
        return (choices[0].get("message", {}).get("content") or "").strip()

    async def cleanup(self) -> None:
        self._api_key = None

    @property
    def name(self) -> str:
        return self.PROVIDER_NAME


class OpenAILLMProvider(OpenAICompatibleLLMProvider):
    """OpenAI chat completions"""
    pass


class OpenRouterLLMProvider(OpenAICompatibleLLMProvider):
    """OpenRouter, routing to many hosted models through one key"""

    API_BASE_URL = "https://openrouter.ai/api/v1"
    DEFAULT_MODEL = "openai/gpt-4o-mini"
    PROVIDER_NAME = "openrouter"
