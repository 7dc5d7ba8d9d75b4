"""
Groq LLM Provider Implementation
Fast inference using Groq LPU architecture

Following Groq's prompting guidelines:
- Role channels (system, user, assistant)
- Temperature 0.6 and short completions for spoken replies
- Stop sequences for cleaner outputs
"""
import logging
from typing import List, Optional

from groq import AsyncGroq

from callpilot.domain.interfaces.llm_provider import LLMProvider
from callpilot.domain.models.conversation import Turn
from callpilot.domain.models.tenant_config import LLMConfig

logger = logging.getLogger(__name__)


class GroqLLMProvider(LLMProvider):
    """
    Groq LLM provider

    Recommended models for voice AI:
    - llama-3.1-8b-instant: Fastest, ideal for real-time
    - llama-3.3-70b-versatile: Best quality/speed balance
    """

    DEFAULT_MODEL = "llama-3.3-70b-versatile"

    # Default stop sequences to prevent rambling
    DEFAULT_STOP_SEQUENCES = ["User:", "Human:", "\n\n\n"]

    def __init__(self):
        self._client: Optional[AsyncGroq] = None
        self._model: str = self.DEFAULT_MODEL
        self._temperature: float = 0.6
        self._max_tokens: int = 75

    async def initialize(self, config: LLMConfig) -> None:
        """Initialize Groq client with configuration"""
        self._client = AsyncGroq(api_key=config.api_key)
        self._model = config.model or self.DEFAULT_MODEL
        self._temperature = config.temperature
        self._max_tokens = config.max_tokens

    async def generate(
        self,
        messages: List[Turn],
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate a chat completion from Groq

        Per Groq docs, temperature is used and top_p is left at 1.0.
        """
        if not self._client:
            raise RuntimeError("Groq client not initialized. Call initialize() first.")

        groq_messages = []
        if system_prompt:
            groq_messages.append({"role": "system", "content": system_prompt})
        for msg in messages:
            groq_messages.append({"role": msg.role, "content": msg.content})

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=groq_messages,
            temperature=temperature if temperature is not None else self._temperature,
            max_tokens=max_tokens if max_tokens is not None else self._max_tokens,
            top_p=1.0,
            stop=self.DEFAULT_STOP_SEQUENCES,
            stream=False,
        )

        if not response.choices:
            raise RuntimeError("Groq returned no choices")
        return (response.choices[0].message.content or "").strip()

    async def cleanup(self) -> None:
        """Release resources"""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def name(self) -> str:
        return "groq"

    def __repr__(self) -> str:
        return f"GroqLLMProvider(model={self._model}, temp={self._temperature})"
