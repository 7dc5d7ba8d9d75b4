"""
LLM Provider Interface
Abstract base class for Language Model providers
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from callpilot.domain.models.conversation import Turn
from callpilot.domain.models.tenant_config import LLMConfig


class LLMProvider(ABC):
    """Abstract base class for Language Model providers"""

    @abstractmethod
    async def initialize(self, config: LLMConfig) -> None:
        """Initialize the provider with configuration"""
        pass

    @abstractmethod
    async def generate(
        self,
        messages: List[Turn],
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate the next assistant utterance

        Args:
            messages: Conversation history, oldest first
            system_prompt: System instructions
            temperature: Randomness, provider default when omitted
            max_tokens: Max response length, provider default when omitted

        Returns:
            str: Reply text
        """
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Release resources"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name"""
        pass
