"""
LLM Provider Factory
"""
from typing import Dict, Type

from callpilot.domain.interfaces.llm_provider import LLMProvider
from callpilot.domain.models.tenant_config import LLMConfig, LLMProviderName
from callpilot.infrastructure.llm.anthropic import AnthropicLLMProvider
from callpilot.infrastructure.llm.groq import GroqLLMProvider
from callpilot.infrastructure.llm.openai_compatible import OpenAILLMProvider, OpenRouterLLMProvider


class LLMFactory:
    """Factory for creating LLM provider instances"""

    _providers: Dict[str, Type[LLMProvider]] = {}

    @classmethod
    async def create(cls, config: LLMConfig) -> LLMProvider:
        """Create and initialize the provider named in the config"""
        provider_name = LLMProviderName(config.provider).value
        if provider_name not in cls._providers:
            available = ", ".join(cls._providers.keys()) if cls._providers else "None"
            raise ValueError(f"Unknown LLM provider: {provider_name}. Available: {available}")

        provider = cls._providers[provider_name]()
        await provider.initialize(config)
        return provider

    @classmethod
    def register(cls, name: LLMProviderName, provider_class: Type[LLMProvider]) -> None:
        """Register a provider"""
        cls._providers[LLMProviderName(name).value] = provider_class

    @classmethod
    def list_providers(cls) -> list[str]:
        """List available providers"""
        return list(cls._providers.keys())


LLMFactory.register(LLMProviderName.GROQ, GroqLLMProvider)
LLMFactory.register(LLMProviderName.OPENAI, OpenAILLMProvider)
LLMFactory.register(LLMProviderName.OPENROUTER, OpenRouterLLMProvider)
LLMFactory.register(LLMProviderName.ANTHROPIC, AnthropicLLMProvider)
