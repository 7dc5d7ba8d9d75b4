"""
Anthropic LLM Provider
Messages API over HTTP
"""
import logging
from typing import List, Optional

import httpx

from callpilot.domain.interfaces.llm_provider import LLMProvider
from callpilot.domain.models.conversation import Turn
from callpilot.domain.models.tenant_config import LLMConfig

logger = logging.getLogger(__name__)


class AnthropicLLMProvider(LLMProvider):
    """Claude models through the Anthropic messages endpoint"""

    API_URL = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"
    DEFAULT_MODEL = "claude-3-5-haiku-latest"
    REQUEST_TIMEOUT = 30.0

    def __init__(self):
        self._api_key: Optional[str] = None
        self._model: str = self.DEFAULT_MODEL
        self._temperature: float = 0.6
        self._max_tokens: int = 75

    async def initialize(self, config: LLMConfig) -> None:
        self._api_key = config.api_key
        self._model = config.model or self.DEFAULT_MODEL
        # Anthropic accepts 0.0-1.0
        self._temperature = min(config.temperature, 1.0)
        self._max_tokens = config.max_tokens

    async def generate(
        self,
        messages: List[Turn],
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        if not self._api_key:
            raise RuntimeError("Anthropic provider not initialized. Call initialize() first.")

        # The messages API requires the first message to come from the user
        chat_messages = [{"role": m.role, "content": m.content} for m in messages]
        if not chat_messages or chat_messages[0]["role"] != "user":
            chat_messages.insert(0, {"role": "user", "content": "(call connected)"})

        payload = {
            "model": self._model,
            "messages": chat_messages,
            "max_tokens": max_tokens if max_tokens is not None else self._max_tokens,
            "temperature": min(temperature, 1.0) if temperature is not None else self._temperature,
        }
        if system_prompt:
            payload["system"] = system_prompt

        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": self.API_VERSION,
            "content-type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT) as client:
            response = await client.post(self.API_URL, json=payload, headers=headers)

            if response.status_code != 200:
                logger.error(f"Anthropic completion failed: HTTP {response.status_code}")
                raise ValueError(f"Anthropic completion failed: HTTP {response.status_code}")

            data = response.json()

        text = "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        )
        return text.strip()

    async def cleanup(self) -> None:
        self._api_key = None

    @property
    def name(self) -> str:
        return "anthropic"
